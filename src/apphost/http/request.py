"""
=============================================================================
HTTP REQUEST READER
=============================================================================

Reads exactly one HTTP/1.1 request off a raw byte stream and turns it into
an immutable HTTPRequest. There is no HTTP library underneath: the reader
asks the stream for chunks of bytes and does the framing itself.

=============================================================================
FRAMING
=============================================================================

    ┌──────────────────────────────────────────────────────────────────┐
    │  POST /api/uploads/temp HTTP/1.1\r\n          ◄── request line   │
    │  Host: localhost:5000\r\n                     ◄── headers        │
    │  Content-Type: application/json\r\n                              │
    │  Content-Length: 57\r\n                                          │
    │  \r\n                                         ◄── terminator     │
    │  {"fileName": "icon.png", "contentBase64": "..."}  ◄── body      │
    └──────────────────────────────────────────────────────────────────┘

    1. recv() chunks into a buffer until \r\n\r\n shows up.
       The buffer may never grow past max_header_bytes (32 KiB) without
       a terminator in sight → 431.
    2. Everything before the terminator is the header block (ASCII).
       Anything after it is body that arrived early, in the same chunk.
    3. Content-Length says how many body bytes to expect in total.
       Over max_body_bytes (8 MiB) → 413. recv() until we have them all.
       The client hanging up early → 400.

The server answers once and closes, so bytes past Content-Length are
simply dropped (no pipelining).

=============================================================================
IDLE CLOSE
=============================================================================

Browsers like to open speculative connections and close them without
sending anything. A stream that ends before the first byte is NOT an
error: read() returns None and the connection is closed silently.

=============================================================================
"""

import io
import re
import socket
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Protocol

from .errors import (
    HeaderTooLarge,
    InvalidContentLength,
    MalformedRequestLine,
    PayloadTooLarge,
    RequestTimeout,
    TruncatedBody,
    TruncatedRequest,
)


logger = logging.getLogger(__name__)


HEADER_TERMINATOR = b"\r\n\r\n"

DEFAULT_MAX_HEADER_BYTES = 32 * 1024
DEFAULT_MAX_BODY_BYTES = 8 * 1024 * 1024
DEFAULT_BUFFER_SIZE = 4096

# Optional sign, ASCII digits only. A leading "-" parses but is rejected.
CONTENT_LENGTH_PATTERN = re.compile(r"[+-]?[0-9]+")


class ByteStream(Protocol):
    """Anything we can pull request bytes from (a socket, a Connection)."""

    def recv(self, bufsize: int) -> bytes:
        ...


@dataclass(frozen=True)
class HTTPRequest:
    """
    One parsed HTTP request.

    Header names are stored lower-cased, so lookups are case-insensitive
    as long as they go through get_header() or use lower-case keys.
    Instances are frozen and the header mapping is read-only.
    """

    method: str
    raw_target: str
    path: str
    version: str = "HTTP/1.1"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: Optional[tuple[str, int]] = None

    def __post_init__(self):
        if not isinstance(self.headers, MappingProxyType):
            object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @property
    def query_string(self) -> str:
        """Everything after the first '?' in the target, or ''."""
        _, _, query = self.raw_target.partition("?")
        return query

    @property
    def content_length(self) -> int:
        return len(self.body)

    @property
    def is_head(self) -> bool:
        return self.method.upper() == "HEAD"

    def get_header(self, name: str, default: str = "") -> str:
        """
        Get a header value (case-insensitive).

        Args:
            name: Header name in any case.
            default: Returned when the header was not sent.
        """
        return self.headers.get(name.lower(), default)


class RequestReader:
    """
    Bounded HTTP/1.1 request reader.

    Usage:
        reader = RequestReader(max_header_bytes=32 * 1024)
        request = reader.read(conn)
        if request is None:
            return  # idle close
    """

    def __init__(
        self,
        max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        self.max_header_bytes = max_header_bytes
        self.max_body_bytes = max_body_bytes
        self.buffer_size = buffer_size

    def read(
        self,
        stream: ByteStream,
        client_address: Optional[tuple[str, int]] = None,
    ) -> Optional[HTTPRequest]:
        """
        Read one request from the stream.

        Args:
            stream: Source of bytes; recv() returning b"" means closed.
            client_address: Peer address, carried into the request.

        Returns:
            The parsed request, or None if the stream closed before
            sending a single byte.

        Raises:
            ClientProtocolError: For any framing problem (400/408/413/431).
        """
        # ─────────────────────────────────────────────────────────────────
        # STEP 1: Buffer until the header terminator
        # ─────────────────────────────────────────────────────────────────
        buffer = bytearray()
        search_from = 0

        while True:
            header_end = buffer.find(HEADER_TERMINATOR, search_from)
            if header_end != -1:
                break

            if len(buffer) > self.max_header_bytes:
                raise HeaderTooLarge()

            chunk = self._recv(stream)
            if not chunk:
                if not buffer:
                    return None
                raise TruncatedRequest()

            # The terminator may straddle two chunks
            search_from = max(0, len(buffer) - len(HEADER_TERMINATOR) + 1)
            buffer += chunk

        if header_end > self.max_header_bytes:
            raise HeaderTooLarge()

        # ─────────────────────────────────────────────────────────────────
        # STEP 2: Request line and headers
        # ─────────────────────────────────────────────────────────────────
        header_text = bytes(buffer[:header_end]).decode("ascii", errors="replace")
        lines = header_text.split("\r\n")

        method, raw_target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        path = raw_target.split("?", 1)[0] or "/"

        # ─────────────────────────────────────────────────────────────────
        # STEP 3: Body
        # ─────────────────────────────────────────────────────────────────
        content_length = self._parse_content_length(headers.get("content-length", ""))

        body = bytearray(buffer[header_end + len(HEADER_TERMINATOR):])
        while len(body) < content_length:
            chunk = self._recv(stream)
            if not chunk:
                raise TruncatedBody()
            body += chunk

        return HTTPRequest(
            method=method,
            raw_target=raw_target,
            path=path,
            version=version,
            headers=headers,
            body=bytes(body[:content_length]),
            client_address=client_address,
        )

    def _recv(self, stream: ByteStream) -> bytes:
        try:
            return stream.recv(self.buffer_size)
        except socket.timeout:
            raise RequestTimeout()

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        """
        Split "METHOD TARGET VERSION".

        Any run of whitespace separates tokens; extra tokens are ignored.
        """
        parts = line.split()
        if len(parts) < 3:
            logger.debug(f"Malformed request line: {line!r}")
            raise MalformedRequestLine()
        return parts[0], parts[1], parts[2]

    def _parse_headers(self, lines: list[str]) -> dict[str, str]:
        """
        Parse "Name: Value" lines.

        The first colon separates name and value. Lines without one (or
        with an empty name) are skipped. A repeated name overwrites the
        earlier value.
        """
        headers: dict[str, str] = {}
        for line in lines:
            separator = line.find(":")
            if separator <= 0:
                continue
            name = line[:separator].strip().lower()
            if not name:
                continue
            headers[name] = line[separator + 1:].strip()
        return headers

    def _parse_content_length(self, value: str) -> int:
        if not value:
            return 0

        if not CONTENT_LENGTH_PATTERN.fullmatch(value):
            raise InvalidContentLength()

        digits = value.lstrip("+-").lstrip("0")
        if value.startswith("-") and digits:
            raise InvalidContentLength()
        if len(digits) > len(str(self.max_body_bytes)):
            raise PayloadTooLarge()

        length = int(value)
        if length > self.max_body_bytes:
            raise PayloadTooLarge()
        return length


class _BytesStream:
    """Serves a fixed byte string through recv(), like a closed socket."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    def recv(self, bufsize: int) -> bytes:
        return self._buffer.read(bufsize)


def parse_request(
    data: bytes,
    client_address: Optional[tuple[str, int]] = None,
    **limits,
) -> Optional[HTTPRequest]:
    """
    Convenience function to parse a request held in memory.

    Args:
        data: Raw request bytes.
        client_address: Optional peer address.
        **limits: max_header_bytes / max_body_bytes / buffer_size.

    Returns:
        Parsed request, or None for empty input.
    """
    return RequestReader(**limits).read(_BytesStream(data), client_address)


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# RequestReader.read(stream) → HTTPRequest | None
#
#   None                  stream closed before the first byte
#   HeaderTooLarge        431  no terminator within max_header_bytes
#   TruncatedRequest      400  stream closed inside the header block
#   MalformedRequestLine  400  fewer than three request-line tokens
#   InvalidContentLength  400  non-numeric or negative Content-Length
#   PayloadTooLarge       413  Content-Length over max_body_bytes
#   TruncatedBody         400  stream closed before Content-Length bytes
#   RequestTimeout        408  socket timeout (only with a timeout set)
# =============================================================================
