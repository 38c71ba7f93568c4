"""
=============================================================================
REQUEST ROUTER
=============================================================================

The per-connection entry point. ConnectionSupervisor calls
handle_connection() once for every accepted socket, on that connection's
own thread.

    handle_connection(conn)
        │
        ├──► RequestReader.read(conn)          None → idle close, done
        │
        ├──► ".." in the raw path?             400 status page
        │
        ├──► /api/... (any case)?  ──────────► ApiHandler
        │
        └──► everything else  ───────────────► StaticSiteHandler
                                                   │
        ┌──────────────────────────────────────────┘
        ▼
    conn.close()  +  one access log line

=============================================================================
ERROR BOUNDARY
=============================================================================

This is the ONLY place that turns exceptions into responses:

    HTTPStatusError, nothing sent yet
        prefer_json  → {"error": message} with the error's status
        otherwise    → HTML status page with the error's status

    HTTPStatusError, response already started
        logged; the half-sent response stands

    any other exception
        logged with traceback; connection closed without a response

No error is retried. Every failure ends the request and the connection.

=============================================================================
"""

import time
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..access_log import RequestLog, log_request
from ..config import HostConfig
from ..core.connection import Connection
from ..handlers.api import API_PREFIX, ApiHandler
from ..handlers.static import StaticSiteHandler
from ..hosting.manifest import ManifestStore
from ..hosting.paths import PathResolver
from ..hosting.uploads import UploadStagingStore
from ..rendering import PageRenderer
from .errors import HTTPStatusError, SecurityViolation
from .request import HTTPRequest, RequestReader
from .response import ResponseFramer


logger = logging.getLogger(__name__)


class RequestRouter:
    """
    Reads, dispatches and answers one request per connection.

    Args:
        config: Limits, server name, log format and content root.
        listen_url: URL shown on the home page.
        uploads: Staging store to share with the server (built if omitted).
    """

    def __init__(
        self,
        config: HostConfig,
        listen_url: Optional[str] = None,
        uploads: Optional[UploadStagingStore] = None,
    ):
        self.config = config
        self.content_root = Path(config.content_root).resolve()

        self.reader = RequestReader(
            max_header_bytes=config.max_header_bytes,
            max_body_bytes=config.max_body_bytes,
            buffer_size=config.buffer_size,
        )
        self.framer = ResponseFramer(config.server_name)
        self.renderer = PageRenderer(listen_url or config.listen_url)
        self.manifests = ManifestStore()
        self.uploads = uploads or UploadStagingStore(self.content_root, config.max_upload_bytes)

        self.static = StaticSiteHandler(
            self.content_root,
            PathResolver(self.content_root),
            self.manifests,
            self.renderer,
            self.framer,
        )
        self.api = ApiHandler(self.content_root, self.uploads, self.manifests, self.framer)

    def handle_connection(self, conn: Connection) -> None:
        """
        Serve exactly one request on conn, then close it.

        Never raises: every failure is rendered or logged here.
        """
        started = time.perf_counter()
        request: Optional[HTTPRequest] = None
        status: Optional[int] = None

        try:
            request = self.reader.read(conn, conn.address)
            if request is None:
                logger.debug(f"[{conn.id}] Closed before sending a request")
                return

            logger.debug(f"[{conn.id}] {request.method} {request.raw_target}")
            status = self.dispatch(conn, request)

        except HTTPStatusError as e:
            status = self._send_error(conn, request, e)

        except Exception:
            logger.exception(f"[{conn.id}] Unhandled error while serving {conn.client_ip}")

        finally:
            conn.close()
            if status is not None:
                self._log_access(conn, request, status, started)

    def dispatch(self, conn: Connection, request: HTTPRequest) -> int:
        """Pick the API or the static site; returns the status sent."""
        if ".." in request.path:
            raise SecurityViolation()

        if request.path.lower().startswith(API_PREFIX):
            return self.api.handle(conn, request)

        return self.static.handle(conn, request)

    def _send_error(
        self,
        conn: Connection,
        request: Optional[HTTPRequest],
        error: HTTPStatusError,
    ) -> Optional[int]:
        if conn.response_started:
            logger.error(f"[{conn.id}] {error!r} after the response had started")
            return None

        logger.info(f"[{conn.id}] {int(error.status)} {error.message}")
        head = request is not None and request.is_head

        try:
            if error.prefer_json:
                self.framer.write_json(conn, error.status, {"error": error.message}, head)
            else:
                page = self.renderer.render_status(
                    f"{int(error.status)} {error.status.phrase}", error.message
                )
                self.framer.write_html(conn, error.status, page, head)
        except OSError as e:
            logger.warning(f"[{conn.id}] Could not send {int(error.status)} response: {e}")
            return None

        return int(error.status)

    def _log_access(
        self,
        conn: Connection,
        request: Optional[HTTPRequest],
        status: int,
        started: float,
    ) -> None:
        log_request(
            RequestLog(
                timestamp=datetime.now(timezone.utc).isoformat(),
                client_ip=conn.client_ip,
                method=request.method if request else "-",
                path=request.raw_target if request else "-",
                status=int(status),
                bytes_sent=conn.bytes_sent,
                duration_ms=(time.perf_counter() - started) * 1000,
                connection_id=conn.id,
                user_agent=(request.get_header("user-agent") or None) if request else None,
            ),
            self.config.log_format,
        )
