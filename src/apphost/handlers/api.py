"""
=============================================================================
JSON API
=============================================================================

Endpoints used by the manifest editor in the gallery:

    GET    /api/apps/{id}/manifest    read an app's presented metadata
    POST   /api/apps/{id}/manifest    replace it (optionally with a new image)
    POST   /api/uploads/temp          stage an image, get a tempId back
    DELETE /api/uploads/temp/{id}     discard a staged image

Everything is JSON both ways and every failure is a JSON {"error": "..."}
body (the errors raised here all have prefer_json set).

Path segments match case-insensitively ("/API/Apps/demo/Manifest" works);
{id} segments are percent-decoded before use.

=============================================================================
MANIFEST UPDATE
=============================================================================

    {
      "name": "Demo",                       blank or missing → cleared
      "description": "...",                 blank or missing → cleared
      "tags": ["games", "Games", "canvas"], normalized before saving
      "image": {                            optional
        "tempId": "9f2c...",                1st choice: promote staged file
        "fileName": "logo.png",             final name (default image.<ext>)
        "contentBase64": "iVBORw0..."       2nd choice: stage + promote now
      },
      "removeImage": true                   wins over "image"
    }

The image is the only field carried over from the stored manifest when
the payload does not mention it.

=============================================================================
"""

import json
import base64
import binascii
import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote

from ..core.connection import Connection
from ..hosting.manifest import (
    HostedApplication,
    ManifestFormatError,
    ManifestStore,
    WebAppManifest,
    resolve_image_url,
)
from ..hosting.uploads import DEFAULT_IMAGE_STEM, UploadStagingStore
from ..http.errors import (
    HTTPStatusError,
    MethodNotAllowed,
    NotFoundResource,
    ValidationError,
)
from ..http.request import HTTPRequest
from ..http.response import ResponseFramer
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


API_PREFIX = "/api/"
API_METHODS = ("GET", "POST", "DELETE")


def _lower_keys(data: dict) -> dict:
    return {key.lower(): value for key, value in data.items()}


def _optional(data: dict, key: str, expected: type, label: str) -> Any:
    """Fetch an optional field, rejecting values of the wrong JSON type."""
    value = data.get(key)
    if value is not None and not isinstance(value, expected):
        raise ValidationError(f"Invalid JSON payload: '{label}' has the wrong type.")
    return value


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def decode_base64(content: str) -> bytes:
    """Strict Base64 decode; whitespace and line breaks are tolerated."""
    try:
        return base64.b64decode("".join(content.split()), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image payload is not valid Base64 content.")


def parse_json_object(body: bytes) -> dict:
    """
    Decode a request body that must hold a JSON object.

    Raises:
        ValidationError: Empty body, invalid JSON or not an object.
    """
    if not body:
        raise ValidationError("Request body is required.")

    try:
        data = json.loads(body.decode("utf-8-sig"))
    except UnicodeDecodeError as e:
        raise ValidationError(f"Invalid JSON payload: {e}")
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON payload: {e}")

    if data is None:
        raise ValidationError("Payload is empty.")
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload: expected an object.")
    return data


def validate_app_id(app_id: str) -> str:
    """
    Make sure an app id names a single directory under the content root.

    Raises:
        ValidationError: Blank, contains a separator, or is "." / "..".
    """
    if (
        _is_blank(app_id)
        or "/" in app_id
        or "\\" in app_id
        or ".." in app_id
        or app_id.strip() == "."
    ):
        raise ValidationError("Invalid application identifier.")
    return app_id


def manifest_response(application: HostedApplication, has_manifest: bool) -> dict:
    return {
        "id": application.directory_id,
        "name": application.display_name,
        "description": application.description,
        "image": application.image_url,
        "tags": list(application.tags),
        "hasManifest": has_manifest,
    }


class ApiHandler:
    """
    Dispatches requests under /api/.

    Usage:
        api = ApiHandler(content_root, uploads, manifests, framer)
        status = api.handle(conn, request)
    """

    def __init__(
        self,
        content_root: Path,
        uploads: UploadStagingStore,
        manifests: ManifestStore,
        framer: ResponseFramer,
    ):
        self.content_root = Path(content_root).resolve()
        self.uploads = uploads
        self.manifests = manifests
        self.framer = framer

    def handle(self, conn: Connection, request: HTTPRequest) -> int:
        """
        Route one API request and write its response.

        Returns:
            The status code that was sent.
        """
        method = request.method.upper()
        if method not in API_METHODS:
            raise MethodNotAllowed(
                "Only GET, POST and DELETE are supported for API endpoints.",
                prefer_json=True,
            )

        # ["api", "apps", "demo", "manifest"]
        segments = [segment for segment in request.path.split("/") if segment]
        names = [segment.lower() for segment in segments]

        if len(segments) == 4 and names[1] == "apps" and names[3] == "manifest":
            app_id = validate_app_id(unquote(segments[2]))
            if method == "GET":
                return self._send(conn, self.get_manifest(app_id))
            if method == "POST":
                return self._send(conn, self.update_manifest(app_id, request.body))
            raise MethodNotAllowed(
                "Only GET and POST are allowed for manifest endpoints.",
                prefer_json=True,
            )

        if len(segments) >= 3 and names[1] == "uploads" and names[2] == "temp":
            if len(segments) == 3 and method == "POST":
                return self._send(conn, self.stage_upload(request.body))
            if len(segments) == 4 and method == "DELETE":
                return self._send(conn, self.delete_upload(unquote(segments[3])))

        raise NotFoundResource("API endpoint not found.")

    def _send(self, conn: Connection, payload: dict) -> int:
        self.framer.write_json(conn, HTTPStatus.OK, payload)
        return HTTPStatus.OK

    # =========================================================================
    # MANIFESTS
    # =========================================================================

    def _app_dir(self, app_id: str) -> Path:
        app_dir = self.content_root / app_id
        if not app_dir.is_dir():
            raise NotFoundResource("Application directory was not found.")
        return app_dir

    def get_manifest(self, app_id: str) -> dict:
        app_dir = self._app_dir(app_id)
        application, has_manifest = self.manifests.load(app_dir, app_id)
        return manifest_response(application, has_manifest)

    def update_manifest(self, app_id: str, body: bytes) -> dict:
        """
        Replace an app's manifest from a JSON payload.

        Raises:
            ValidationError: Bad JSON, wrong field types, bad image payload.
            NotFoundResource: No such app directory.
            UploadNotFound: image.tempId does not name a staged upload.
        """
        update = _lower_keys(parse_json_object(body))

        name = _optional(update, "name", str, "name")
        description = _optional(update, "description", str, "description")
        tags = _optional(update, "tags", list, "tags")
        image_payload = _optional(update, "image", dict, "image")
        remove_image = _optional(update, "removeimage", bool, "removeImage")

        if tags is not None and not all(isinstance(tag, str) for tag in tags):
            raise ValidationError("Invalid JSON payload: 'tags' must be a list of strings.")

        app_dir = self._app_dir(app_id)

        try:
            current = self.manifests.read(app_dir)
        except ManifestFormatError as e:
            logger.warning(f"Replacing unreadable manifest: {e}")
            current = None

        image = current.image if current else None
        if remove_image:
            self._delete_app_image(app_id, app_dir, image)
            image = None
        elif image_payload is not None:
            image = self._apply_image_update(app_id, _lower_keys(image_payload)) or image

        manifest = WebAppManifest(
            name=None if _is_blank(name) else name,
            description=None if _is_blank(description) else description,
            image=image,
            tags=tags or [],
        )
        self.manifests.save(app_dir, manifest)

        application, has_manifest = self.manifests.load(app_dir, app_id)
        return manifest_response(application, has_manifest)

    def _apply_image_update(self, app_id: str, payload: dict) -> Optional[str]:
        """Promote a staged or inline image; returns its URL, or None."""
        temp_id = _optional(payload, "tempid", str, "image.tempId")
        file_name = _optional(payload, "filename", str, "image.fileName")
        content = _optional(payload, "contentbase64", str, "image.contentBase64")

        if not _is_blank(temp_id):
            return self.uploads.promote(app_id, temp_id.strip(), None if _is_blank(file_name) else file_name)

        if not _is_blank(content):
            data = decode_base64(content)
            upload_name = DEFAULT_IMAGE_STEM if _is_blank(file_name) else file_name
            staged = self.uploads.stage(upload_name, data, app_id)
            try:
                return self.uploads.promote(app_id, staged.identifier, staged.original_file_name)
            except HTTPStatusError:
                self.uploads.delete(staged.identifier)
                raise

        return None

    def _delete_app_image(self, app_id: str, app_dir: Path, image: Optional[str]) -> None:
        """
        Delete the file behind an app's current image.

        Only files inside the app's own directory are touched; anything
        else (shared icons, absolute URLs) is left alone. Failures are
        logged and otherwise ignored.
        """
        if _is_blank(image):
            return

        url = resolve_image_url(app_id, image.strip())
        prefix = resolve_image_url(app_id, "")
        if not url.lower().startswith(prefix.lower()):
            return

        relative = unquote(url[len(prefix):])
        app_root = app_dir.resolve()
        target = (app_root / relative).resolve()
        try:
            target.relative_to(app_root)
        except ValueError:
            logger.warning(f"Not deleting image outside {app_id}: {image!r}")
            return

        if not target.is_file():
            return

        try:
            target.unlink()
            logger.info(f"Deleted image {target.name} from {app_id}")
        except OSError as e:
            logger.warning(f"Failed to delete previous image {target}: {e}")

    # =========================================================================
    # UPLOADS
    # =========================================================================

    def stage_upload(self, body: bytes) -> dict:
        payload = _lower_keys(parse_json_object(body))

        file_name = _optional(payload, "filename", str, "fileName")
        content = _optional(payload, "contentbase64", str, "contentBase64")
        app_id = _optional(payload, "appid", str, "appId")

        if _is_blank(file_name) or _is_blank(content):
            raise ValidationError("File name and content are required.")

        staged = self.uploads.stage(file_name, decode_base64(content), app_id)
        return {
            "tempId": staged.identifier,
            "fileName": staged.original_file_name,
            "sizeBytes": staged.size_bytes,
        }

    def delete_upload(self, identifier: str) -> dict:
        if _is_blank(identifier):
            raise ValidationError("Upload identifier is required.")
        return {"deleted": self.uploads.delete(identifier.strip())}
