"""
=============================================================================
UPLOAD STAGING
=============================================================================

Images uploaded from the manifest editor are not written into an app
straight away. They are first STAGED in a scratch directory, and only
PROMOTED into the app when the user saves the manifest:

    POST /api/uploads/temp                POST /api/apps/demo/manifest
    {fileName, contentBase64}             {image: {tempId: "9f2c..."}}
            │                                       │
            ▼                                       ▼
    ┌──────────────────────────┐  promote  ┌──────────────────────┐
    │ www/_uploads/9f2c....png │ ────────► │ www/demo/image.png   │
    └──────────────────────────┘ copy+del  └──────────────────────┘
            │
            └── DELETE /api/uploads/temp/9f2c...  (user cancelled)

The scratch directory has no life beyond the process: purge_all() wipes
it at every startup.

=============================================================================
IDENTIFIERS
=============================================================================

    sha256("<appId>|<sanitized name>|<UTC timestamp>|<uuid4>").hexdigest()

The random UUID alone makes collisions between two concurrent stagings
practically impossible. The identifier is also the stored file name (plus
the lower-cased extension), so lookups are a directory scan for
"<identifier>." and need no index.

=============================================================================
CONCURRENCY
=============================================================================

No locking. Two requests promoting or deleting the SAME identifier at the
same time race: one of them wins, the other sees UploadNotFound or an
OSError. Promote is copy-then-delete, so a crash between the two steps
leaves both copies behind (the staged one disappears at next startup).

=============================================================================
"""

import re
import uuid
import shutil
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from ..http.errors import (
    SecurityViolation,
    UnsupportedImageType,
    UploadNotFound,
    UploadTooLarge,
    ValidationError,
)
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


UPLOADS_DIRECTORY_NAME = "_uploads"

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024

ALLOWED_IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg"})

# Characters no common filesystem accepts in a file name
INVALID_FILE_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

DEFAULT_IMAGE_STEM = "image"


@dataclass(frozen=True)
class TemporaryUpload:
    identifier: str
    stored_file_name: str
    original_file_name: str
    size_bytes: int


def sanitize_file_name(file_name: Optional[str]) -> str:
    """
    Reduce a client-supplied name to a safe, single-component file name.

        "C:\\Users\\me\\icon.PNG"  → "icon.PNG"
        "../../etc/passwd"        → "passwd"
        "my:logo?.png"            → "my_logo_.png"
        "   "                     → "image"
    """
    name = re.split(r"[\\/]", file_name or "")[-1]
    name = INVALID_FILE_NAME_CHARS.sub("_", name).strip()
    return name or DEFAULT_IMAGE_STEM


def file_extension(file_name: str) -> str:
    """
    Lower-cased extension including the dot, or "".

    Unlike Path.suffix, a leading dot counts: ".png" → ".png".
    """
    dot = file_name.rfind(".")
    if dot == -1 or dot == len(file_name) - 1:
        return ""
    return file_name[dot:].lower()


class UploadStagingStore:
    """
    Content-addressed scratch store for uploaded images.

    Usage:
        store = UploadStagingStore(Path("www"))
        upload = store.stage("icon.png", data, owner_app_id="demo")
        url = store.promote("demo", upload.identifier)   # "/demo/image.png"
    """

    def __init__(self, content_root: Path, max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES):
        self.content_root = Path(content_root).resolve()
        self.uploads_dir = self.content_root / UPLOADS_DIRECTORY_NAME
        self.max_upload_bytes = max_upload_bytes

    # =========================================================================
    # STAGE
    # =========================================================================

    def stage(
        self,
        file_name: Optional[str],
        content: bytes,
        owner_app_id: Optional[str] = None,
    ) -> TemporaryUpload:
        """
        Store an upload in the scratch directory.

        Args:
            file_name: Name as sent by the client (sanitized here).
            content: The image bytes.
            owner_app_id: App the upload is meant for, mixed into the id.

        Raises:
            UploadTooLarge: content exceeds max_upload_bytes.
            UnsupportedImageType: extension not on the allow-list.
        """
        if len(content) > self.max_upload_bytes:
            raise UploadTooLarge()

        safe_name = sanitize_file_name(file_name)
        extension = self._validate_extension(safe_name)

        identifier = self._create_identifier(owner_app_id, safe_name)
        stored_file_name = f"{identifier}{extension}"

        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        (self.uploads_dir / stored_file_name).write_bytes(content)

        logger.info(f"Staged upload {stored_file_name} ({len(content)} bytes) for {owner_app_id or '-'}")

        return TemporaryUpload(
            identifier=identifier,
            stored_file_name=stored_file_name,
            original_file_name=safe_name,
            size_bytes=len(content),
        )

    # =========================================================================
    # PROMOTE
    # =========================================================================

    def promote(
        self,
        app_dir_id: str,
        identifier: str,
        desired_file_name: Optional[str] = None,
    ) -> str:
        """
        Move a staged upload into an app directory.

        Args:
            app_dir_id: Name of the app directory under the content root.
            identifier: tempId returned by stage().
            desired_file_name: Final name; blank means "image" plus the
                staged file's extension.

        Returns:
            URL path of the promoted file, e.g. "/my%20app/image.png".

        Raises:
            UploadNotFound: No staged file has this identifier.
            UnsupportedImageType: The desired name has a bad extension.
            SecurityViolation: The destination would leave the app directory.
            ValidationError: The destination cannot be written, e.g. it is
                a directory. The staged file is kept.
        """
        staged = self._find_staged(identifier)
        if staged is None:
            raise UploadNotFound()

        if not desired_file_name or not desired_file_name.strip():
            desired_file_name = DEFAULT_IMAGE_STEM + file_extension(staged.name)

        safe_name = sanitize_file_name(desired_file_name)
        self._validate_extension(safe_name)

        app_dir = (self.content_root / app_dir_id).resolve()
        destination = (app_dir / safe_name).resolve()
        try:
            app_dir.relative_to(self.content_root)
            destination.relative_to(app_dir)
        except ValueError:
            raise SecurityViolation("Access denied.", status=HTTPStatus.FORBIDDEN, prefer_json=True)
        if app_dir == self.content_root:
            raise SecurityViolation("Access denied.", status=HTTPStatus.FORBIDDEN, prefer_json=True)

        try:
            app_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(staged, destination)
        except OSError as e:
            raise ValidationError(f"Unable to save image as '{safe_name}': {e.strerror or e}.") from e
        staged.unlink()

        logger.info(f"Promoted upload {staged.name} → {app_dir_id}/{safe_name}")

        return f"/{quote(app_dir_id, safe='')}/{quote(safe_name, safe='')}"

    # =========================================================================
    # DELETE / PURGE
    # =========================================================================

    def delete(self, identifier: str) -> bool:
        """
        Remove a staged upload.

        Returns:
            True if a file was found and removed. Filesystem errors are
            logged and reported as False.
        """
        try:
            staged = self._find_staged(identifier)
            if staged is None:
                return False
            staged.unlink()
        except OSError as e:
            logger.warning(f"Failed to delete staged upload {identifier!r}: {e}")
            return False

        logger.info(f"Deleted staged upload {staged.name}")
        return True

    def purge_all(self) -> None:
        """Delete the scratch directory and recreate it empty."""
        if self.uploads_dir.exists():
            try:
                shutil.rmtree(self.uploads_dir)
            except OSError as e:
                logger.warning(f"Failed to purge {self.uploads_dir}: {e}")

        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Upload staging directory ready at {self.uploads_dir}")

    # ─────────────────────────────────────────────────────────────────────
    # HELPERS
    # ─────────────────────────────────────────────────────────────────────

    def _find_staged(self, identifier: str) -> Optional[Path]:
        if not identifier or not identifier.strip() or not self.uploads_dir.is_dir():
            return None

        prefix = f"{identifier}."
        matches = sorted(
            entry for entry in self.uploads_dir.iterdir()
            if entry.name.startswith(prefix) and entry.is_file()
        )
        return matches[0] if matches else None

    @staticmethod
    def _validate_extension(file_name: str) -> str:
        extension = file_extension(file_name)
        if extension not in ALLOWED_IMAGE_EXTENSIONS:
            raise UnsupportedImageType(f"Unsupported image type '{extension}'.")
        return extension

    @staticmethod
    def _create_identifier(owner_app_id: Optional[str], safe_name: str) -> str:
        timestamp = datetime.now(timezone.utc).isoformat()
        seed = f"{owner_app_id or ''}|{safe_name}|{timestamp}|{uuid.uuid4()}"
        return hashlib.sha256(seed.encode("utf-8")).hexdigest()
