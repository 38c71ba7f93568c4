"""
=============================================================================
HTTP RESPONSE FRAMER
=============================================================================

Every byte this server sends goes through ResponseFramer.write(). Success
pages, JSON API responses, redirects, streamed files and error pages all
share one header layout, so the framing can never drift between code
paths.

=============================================================================
WIRE FORMAT
=============================================================================

    HTTP/1.1 200 OK\r\n
    Date: Mon, 19 Oct 2026 12:00:00 GMT\r\n
    Server: AppHost/0.1\r\n
    Content-Length: 1234\r\n
    Content-Type: text/html; charset=utf-8\r\n
    Connection: close\r\n
    Location: /demo/\r\n                    ◄── only for redirects
    \r\n
    <body bytes>                            ◄── omitted for HEAD

Headers are always emitted in exactly this order and no others are added.

=============================================================================
FILE BODIES
=============================================================================

Files are never read into memory. We open the file, take its size from
fstat() on the OPEN handle (so Content-Length matches what we are about to
stream, even if the file is replaced on disk meanwhile), write the header
block, then hand the descriptor to socket.sendfile():

    open(path) ──► fstat().st_size ──► headers ──► sendfile(fd, 0, size)
                        │                              │
                        └── Content-Length ◄───────────┘ same number

sendfile() lets the kernel copy file pages straight into the socket
(falling back to read/send where the platform has no zero-copy path).

=============================================================================
"""

import os
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol, Union, BinaryIO

from .mime_types import HTML_CONTENT_TYPE, JSON_CONTENT_TYPE
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)


DEFAULT_SERVER_NAME = "AppHost/0.1"


class ResponseStream(Protocol):
    """The write half of a connection (a socket or a Connection)."""

    def sendall(self, data: bytes) -> None:
        ...

    def sendfile(self, file: BinaryIO, offset: int = 0, count: Optional[int] = None) -> int:
        ...


Body = Union[bytes, str, Path]


class ResponseFramer:
    """
    Builds and writes complete HTTP/1.1 responses.

    Usage:
        framer = ResponseFramer("AppHost/0.1")
        framer.write(conn, HTTPStatus.OK, "text/plain", b"hello")
        framer.write(conn, HTTPStatus.OK, "image/png", Path("icon.png"), head=True)
    """

    def __init__(self, server_name: str = DEFAULT_SERVER_NAME):
        self.server_name = server_name

    def write(
        self,
        stream: ResponseStream,
        status: int,
        content_type: str,
        body: Body = b"",
        head: bool = False,
        location: Optional[str] = None,
    ) -> int:
        """
        Write one response.

        Args:
            stream: Destination.
            status: HTTP status code.
            content_type: Value of the Content-Type header.
            body: Bytes, text (UTF-8 encoded) or a path to stream.
            head: True for HEAD requests; headers only.
            location: Location header value for redirects.

        Returns:
            The Content-Length that was announced.
        """
        status = HTTPStatus(status)

        if isinstance(body, Path):
            return self._write_file(stream, status, content_type, body, head)

        if isinstance(body, str):
            body = body.encode("utf-8")

        header_block = self.build_headers(status, content_type, len(body), location)
        stream.sendall(header_block if head else header_block + body)
        return len(body)

    def build_headers(
        self,
        status: HTTPStatus,
        content_type: str,
        content_length: int,
        location: Optional[str] = None,
    ) -> bytes:
        """Render the status line and header block, blank line included."""
        lines = [
            f"HTTP/1.1 {int(status)} {status.phrase}",
            f"Date: {format_http_date(datetime.now(timezone.utc))}",
            f"Server: {self.server_name}",
            f"Content-Length: {content_length}",
            f"Content-Type: {content_type}",
            "Connection: close",
        ]
        if location:
            lines.append(f"Location: {location}")

        return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

    def _write_file(
        self,
        stream: ResponseStream,
        status: HTTPStatus,
        content_type: str,
        path: Path,
        head: bool,
    ) -> int:
        with open(path, "rb") as handle:
            size = os.fstat(handle.fileno()).st_size
            stream.sendall(self.build_headers(status, content_type, size))
            if not head and size:
                stream.sendfile(handle, 0, size)
        return size

    # ─────────────────────────────────────────────────────────────────────
    # CONVENIENCE WRAPPERS
    # ─────────────────────────────────────────────────────────────────────

    def write_html(
        self,
        stream: ResponseStream,
        status: int,
        html: str,
        head: bool = False,
        location: Optional[str] = None,
    ) -> int:
        return self.write(stream, status, HTML_CONTENT_TYPE, html, head, location)

    def write_json(
        self,
        stream: ResponseStream,
        status: int,
        data: Any,
        head: bool = False,
    ) -> int:
        """Serialize data as indented UTF-8 JSON and write it."""
        payload = json.dumps(data, indent=2, ensure_ascii=False)
        return self.write(stream, status, JSON_CONTENT_TYPE, payload, head)

    def write_file(
        self,
        stream: ResponseStream,
        path: Path,
        content_type: str,
        head: bool = False,
    ) -> int:
        return self.write(stream, HTTPStatus.OK, content_type, Path(path), head)


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 1123).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Mon, 19 Oct 2026 12:00:00 GMT

    Day and month names are always English, whatever the process locale.

    Args:
        dt: Datetime to format (UTC).
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )
