"""
=============================================================================
HTTP STATUS ERRORS
=============================================================================

Every component signals a failure the client should see by raising one of
the exceptions below. Each carries three things:

    status       The HTTP status code to send (400, 404, 431, ...)
    message      Human-readable text for the status page or JSON body
    prefer_json  Whether the error should be rendered as {"error": ...}

Nothing inside a component catches these. They travel up to the
connection boundary (RequestRouter.handle_connection), which is the only
place that decides HOW to render them:

    ┌────────────────────┐   raise    ┌────────────────────────────┐
    │ RequestReader      │ ─────────► │                            │
    │ PathResolver       │ ─────────► │  RequestRouter             │
    │ UploadStagingStore │ ─────────► │    prefer_json?            │
    │ ManifestStore      │ ─────────► │      yes → {"error": msg}  │
    │ API handlers       │ ─────────► │      no  → status page     │
    └────────────────────┘            └────────────────────────────┘

=============================================================================
TAXONOMY
=============================================================================

    HTTPStatusError
    ├── ClientProtocolError          400  malformed framing
    │   ├── MalformedRequestLine     400
    │   ├── InvalidContentLength     400
    │   ├── TruncatedRequest         400
    │   ├── TruncatedBody            400
    │   ├── HeaderTooLarge           431
    │   ├── PayloadTooLarge          413
    │   └── RequestTimeout           408
    ├── SecurityViolation            400 / 403
    ├── NotFoundError                404
    ├── MethodNotAllowed             405
    ├── ValidationError              400  (JSON)
    │   ├── UploadTooLarge
    │   └── UnsupportedImageType
    └── NotFoundResource             404  (JSON)
        └── UploadNotFound

=============================================================================
"""

from typing import Optional

from .status_codes import HTTPStatus


class HTTPStatusError(Exception):
    """
    Base class for errors that map directly onto an HTTP response.

    Args:
        message: Text shown to the client.
        status: Overrides the class default status code.
        prefer_json: Overrides the class default rendering.
    """

    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message: str = "An unexpected error occurred."
    prefer_json: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        status: Optional[int] = None,
        prefer_json: Optional[bool] = None,
    ):
        self.message = message or self.default_message
        if status is not None:
            self.status = HTTPStatus(status)
        if prefer_json is not None:
            self.prefer_json = prefer_json
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({int(self.status)}, {self.message!r})"


# ─────────────────────────────────────────────────────────────────────────────
# REQUEST FRAMING
# ─────────────────────────────────────────────────────────────────────────────

class ClientProtocolError(HTTPStatusError):
    """The bytes on the wire are not a request we can read."""

    status = HTTPStatus.BAD_REQUEST
    default_message = "Malformed request."


class MalformedRequestLine(ClientProtocolError):
    default_message = "Malformed request line."


class InvalidContentLength(ClientProtocolError):
    default_message = "Invalid Content-Length header."


class TruncatedRequest(ClientProtocolError):
    default_message = "Unexpected end of stream."


class TruncatedBody(ClientProtocolError):
    default_message = "Unexpected end of request body."


class HeaderTooLarge(ClientProtocolError):
    status = HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE
    default_message = "Request headers are too large."


class PayloadTooLarge(ClientProtocolError):
    status = HTTPStatus.PAYLOAD_TOO_LARGE
    default_message = "Request body is too large."


class RequestTimeout(ClientProtocolError):
    status = HTTPStatus.REQUEST_TIMEOUT
    default_message = "Timed out waiting for the request."


# ─────────────────────────────────────────────────────────────────────────────
# ROUTING / RESOURCES
# ─────────────────────────────────────────────────────────────────────────────

class SecurityViolation(HTTPStatusError):
    """Path traversal (400) or an escape from the content root (403)."""

    status = HTTPStatus.BAD_REQUEST
    default_message = "Invalid path."


class NotFoundError(HTTPStatusError):
    status = HTTPStatus.NOT_FOUND
    default_message = "The requested resource was not found."


class MethodNotAllowed(HTTPStatusError):
    status = HTTPStatus.METHOD_NOT_ALLOWED
    default_message = "Method not allowed."


# ─────────────────────────────────────────────────────────────────────────────
# API
# ─────────────────────────────────────────────────────────────────────────────

class ValidationError(HTTPStatusError):
    """The request was readable but its content was rejected."""

    status = HTTPStatus.BAD_REQUEST
    default_message = "Invalid request."
    prefer_json = True


class UploadTooLarge(ValidationError):
    default_message = "Images larger than 5 MB are not permitted."


class UnsupportedImageType(ValidationError):
    default_message = "Unsupported image type."


class NotFoundResource(HTTPStatusError):
    status = HTTPStatus.NOT_FOUND
    default_message = "Resource was not found."
    prefer_json = True


class UploadNotFound(NotFoundResource):
    default_message = "Temporary upload was not found."
