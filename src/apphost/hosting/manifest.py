"""
=============================================================================
APP MANIFESTS
=============================================================================

Each hosted app is a directory under the content root. It may carry a
manifest.json describing how the home gallery should present it:

    www/
    ├── demo/
    │   ├── index.html
    │   ├── image.png
    │   └── manifest.json   {"name": "Demo", "tags": ["Games", "canvas"],
    │                        "image": "image.png", "description": "..."}
    └── notes/              (no manifest: defaults apply)

Nothing is cached. Every request re-reads the directory and the manifest,
so editing files by hand shows up on the next page load.

=============================================================================
DEFAULTS
=============================================================================

    field         missing / blank →
    ───────────   ─────────────────────────────────────
    name          the directory name
    description   "No description provided."
    image         "/assets/icons/favicon-256x256.png"
    tags          []  (otherwise trimmed, de-duplicated ignoring case,
                       sorted ignoring case)

=============================================================================
IMAGE URLS
=============================================================================

    "https://cdn.example.com/a.png"  → unchanged (absolute URL)
    "/shared\\icons\\a.png"           → "/shared/icons/a.png"
    "img/my icon.png"                → "/demo/img/my%20icon.png"

=============================================================================
ATOMIC SAVES
=============================================================================

save() writes to a temporary file in the SAME directory, fsyncs it and
os.replace()s it over manifest.json. Readers see either the old file or
the new one, never half of each. There is no lock: two concurrent saves
to the same app both succeed and the last rename wins.

=============================================================================
"""

import os
import json
import logging
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable, Optional
from urllib.parse import quote, urlsplit

from .paths import name_sort_key


logger = logging.getLogger(__name__)


MANIFEST_FILE_NAME = "manifest.json"

DEFAULT_DESCRIPTION = "No description provided."
DEFAULT_IMAGE = "/assets/icons/favicon-256x256.png"


class ManifestFormatError(ValueError):
    """manifest.json exists but is not a JSON object."""


@dataclass
class WebAppManifest:
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    tags: Optional[list[str]] = None

    @classmethod
    def from_dict(cls, data: dict) -> "WebAppManifest":
        """
        Build a manifest from parsed JSON.

        Keys match case-insensitively ("Name" and "name" are the same).
        Values of the wrong type are ignored.
        """
        fields = {key.lower(): value for key, value in data.items() if isinstance(key, str)}

        def text(key: str) -> Optional[str]:
            value = fields.get(key)
            return value if isinstance(value, str) else None

        tags = fields.get("tags")
        return cls(
            name=text("name"),
            description=text("description"),
            image=text("image"),
            tags=[tag for tag in tags if isinstance(tag, str)] if isinstance(tags, list) else None,
        )

    def to_dict(self) -> dict:
        data: dict[str, Any] = {}
        if self.name is not None:
            data["name"] = self.name
        if self.description is not None:
            data["description"] = self.description
        if self.image is not None:
            data["image"] = self.image
        data["tags"] = list(self.tags or [])
        return data


@dataclass(frozen=True)
class HostedApplication:
    """An app directory as the gallery and the API present it."""

    directory_id: str
    display_name: str
    description: str
    image_url: str
    tags: tuple[str, ...] = field(default_factory=tuple)

    @property
    def url(self) -> str:
        return f"/{quote(self.directory_id, safe='')}/"


def normalize_tags(tags: Optional[Iterable[Any]]) -> list[str]:
    """
    Trim, drop blanks, de-duplicate ignoring case, sort ignoring case.

    The first spelling of a duplicate wins:

        >>> normalize_tags([" games", "Games", "", "canvas"])
        ['canvas', 'games']
    """
    seen: dict[str, str] = {}
    for tag in tags or []:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()
        if tag and tag.casefold() not in seen:
            seen[tag.casefold()] = tag
    return sorted(seen.values(), key=lambda tag: (tag.casefold(), tag))


def is_absolute_url(value: str) -> bool:
    # A one-letter scheme is a Windows drive ("C:\..."), not a URL
    try:
        scheme = urlsplit(value).scheme
    except ValueError:
        return False
    return len(scheme) > 1


def resolve_image_url(directory_id: str, image: str) -> str:
    """Turn a manifest image reference into a URL the browser can load."""
    if is_absolute_url(image):
        return image

    if image.startswith("/"):
        return image.replace("\\", "/")

    segments = [segment for segment in image.replace("\\", "/").split("/") if segment]
    encoded = "/".join(quote(segment, safe="") for segment in segments)
    return f"/{quote(directory_id, safe='')}/{encoded}"


class ManifestStore:
    """
    Reads, writes and interprets manifest.json files.

    Usage:
        store = ManifestStore()
        app, has_manifest = store.load(Path("www/demo"), "demo")
    """

    def read(self, app_dir: Path) -> Optional[WebAppManifest]:
        """
        Read an app's manifest.

        Returns:
            The manifest, or None if the app has no manifest.json.

        Raises:
            ManifestFormatError: The file cannot be read, is not valid JSON
                or is not an object.
        """
        path = Path(app_dir) / MANIFEST_FILE_NAME
        try:
            text = path.read_text(encoding="utf-8-sig")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise ManifestFormatError(f"{path}: not valid UTF-8") from e
        except OSError as e:
            raise ManifestFormatError(f"{path}: {e.strerror or e}") from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestFormatError(f"{path}: {e}") from e

        if not isinstance(data, dict):
            raise ManifestFormatError(f"{path}: expected a JSON object")

        return WebAppManifest.from_dict(data)

    def save(self, app_dir: Path, manifest: WebAppManifest) -> None:
        """Atomically replace the app's manifest.json."""
        app_dir = Path(app_dir)
        manifest = replace(manifest, tags=normalize_tags(manifest.tags))
        payload = json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False)

        fd, tmp = tempfile.mkstemp(prefix=".manifest_tmp_", suffix=".json", dir=str(app_dir))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp, app_dir / MANIFEST_FILE_NAME)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

        logger.info(f"Saved manifest for {app_dir.name}")

    def load(self, app_dir: Path, directory_id: str) -> tuple[HostedApplication, bool]:
        """
        Build the presented view of an app, defaults applied.

        A manifest that cannot be parsed is logged and treated as absent.

        Returns:
            (application, has_manifest)
        """
        try:
            manifest = self.read(app_dir)
        except ManifestFormatError as e:
            logger.warning(f"Ignoring unreadable manifest: {e}")
            manifest = None

        has_manifest = manifest is not None
        manifest = manifest or WebAppManifest()

        name = manifest.name.strip() if manifest.name and manifest.name.strip() else directory_id
        description = (
            manifest.description.strip()
            if manifest.description and manifest.description.strip()
            else DEFAULT_DESCRIPTION
        )
        image = (
            resolve_image_url(directory_id, manifest.image.strip())
            if manifest.image and manifest.image.strip()
            else DEFAULT_IMAGE
        )

        application = HostedApplication(
            directory_id=directory_id,
            display_name=name,
            description=description,
            image_url=image,
            tags=tuple(normalize_tags(manifest.tags)),
        )
        return application, has_manifest

    def list_applications(self, content_root: Path) -> list[HostedApplication]:
        """
        One entry per app directory, ordered by display name.

        Directories starting with "_" or "." are infrastructure (uploads,
        assets, templates) and are skipped.
        """
        content_root = Path(content_root)
        if not content_root.is_dir():
            return []

        applications = []
        for entry in content_root.iterdir():
            if not entry.is_dir() or entry.name.startswith(("_", ".")):
                continue
            application, _ = self.load(entry, entry.name)
            applications.append(application)

        applications.sort(key=lambda app: name_sort_key(app.display_name))
        return applications
