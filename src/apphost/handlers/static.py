"""
=============================================================================
STATIC SITE HANDLER
=============================================================================

Serves everything outside /api/: the home gallery and the hosted apps'
files.

    GET /                    home gallery (also /index.html, any case)
    GET /demo                301 → /demo/
    GET /demo/               demo/index.html, or a directory listing
    GET /demo/app.js         the file, streamed
    HEAD <any of the above>  same headers, no body
    POST/PUT/... anything    405

The handler decides WHAT to send; PathResolver classifies the path,
PageRenderer produces HTML and ResponseFramer writes the bytes.

=============================================================================
"""

import logging
from pathlib import Path
from urllib.parse import unquote

from ..core.connection import Connection
from ..hosting.manifest import ManifestStore
from ..hosting.paths import (
    FileTarget,
    Forbidden,
    IndexFile,
    Listing,
    PathResolver,
    Redirect,
)
from ..http.errors import (
    ClientProtocolError,
    MethodNotAllowed,
    NotFoundError,
    SecurityViolation,
)
from ..http.request import HTTPRequest
from ..http.response import ResponseFramer
from ..http.status_codes import HTTPStatus
from ..rendering import PageRenderer


logger = logging.getLogger(__name__)


STATIC_METHODS = ("GET", "HEAD")


def decode_request_path(path: str) -> str:
    """
    Percent-decode a URL path as UTF-8.

    "+" is NOT a space in paths. Invalid UTF-8 escapes are a 400.
    """
    try:
        return unquote(path, encoding="utf-8", errors="strict")
    except UnicodeDecodeError:
        raise ClientProtocolError("Unable to decode request path.")


def is_home_path(path: str) -> bool:
    return path == "/" or path.lower() == "/index.html"


class StaticSiteHandler:
    """
    Serves the home page and files under the content root.

    Usage:
        static = StaticSiteHandler(content_root, resolver, manifests, renderer, framer)
        status = static.handle(conn, request)
    """

    def __init__(
        self,
        content_root: Path,
        resolver: PathResolver,
        manifests: ManifestStore,
        renderer: PageRenderer,
        framer: ResponseFramer,
    ):
        self.content_root = Path(content_root).resolve()
        self.resolver = resolver
        self.manifests = manifests
        self.renderer = renderer
        self.framer = framer

    def handle(self, conn: Connection, request: HTTPRequest) -> int:
        """
        Answer one static request.

        Returns:
            The status code that was sent.

        Raises:
            MethodNotAllowed: Anything but GET or HEAD.
            ClientProtocolError: Undecodable path.
            SecurityViolation: ".." in the path (400) or a root escape (403).
            NotFoundError: Nothing at that path.
        """
        method = request.method.upper()
        if method not in STATIC_METHODS:
            raise MethodNotAllowed("Only GET and HEAD are supported.")
        head = method == "HEAD"

        if is_home_path(request.path):
            applications = self.manifests.list_applications(self.content_root)
            self.framer.write_html(conn, HTTPStatus.OK, self.renderer.render_home(applications), head)
            return HTTPStatus.OK

        decoded = decode_request_path(request.path)
        outcome = self.resolver.resolve(decoded)

        if isinstance(outcome, Redirect):
            self.framer.write_html(
                conn,
                HTTPStatus.MOVED_PERMANENTLY,
                self.renderer.render_redirect(outcome.location),
                head,
                location=outcome.location,
            )
            return HTTPStatus.MOVED_PERMANENTLY

        if isinstance(outcome, (FileTarget, IndexFile)):
            self.framer.write_file(conn, outcome.path, outcome.content_type, head)
            return HTTPStatus.OK

        if isinstance(outcome, Listing):
            html = self.renderer.render_directory_listing(
                outcome.request_path,
                outcome.parent_url,
                outcome.directories,
                outcome.files,
            )
            self.framer.write_html(conn, HTTPStatus.OK, html, head)
            return HTTPStatus.OK

        if isinstance(outcome, Forbidden):
            raise SecurityViolation("Access denied.", status=HTTPStatus.FORBIDDEN)

        raise NotFoundError()
