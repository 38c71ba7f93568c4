"""
HTTP/1.1 protocol pieces: request reading, response framing and the
status error hierarchy. The router lives in apphost.http.router and is
imported from there.
"""

from .errors import HTTPStatusError
from .request import HTTPRequest, RequestReader, parse_request
from .response import ResponseFramer, format_http_date
from .status_codes import HTTPStatus

__all__ = [
    "HTTPRequest",
    "HTTPStatus",
    "HTTPStatusError",
    "RequestReader",
    "ResponseFramer",
    "format_http_date",
    "parse_request",
]
