"""
=============================================================================
PATH RESOLUTION
=============================================================================

Maps a decoded URL path onto the content root and says what the router
should do with it. The resolver never writes to the socket; it returns
one of six outcomes and the router turns that into a response.

    decoded path            filesystem                      outcome
    ──────────────────────  ──────────────────────────────  ──────────────
    /demo/app.js            www/demo/app.js (file)          FileTarget
    /demo                   www/demo/ (directory)           Redirect /demo/
    /demo/                  www/demo/index.html exists      IndexFile
    /notes/                 www/notes/ (no index.html)      Listing
    /missing.txt            nothing                         NotFound
    /link-to-etc/passwd     symlink leaving www/            Forbidden
    /../etc/passwd          (never touched)                 SecurityViolation

=============================================================================
SECURITY
=============================================================================

Two independent checks:

1. Lexical: any ".." in the decoded path is rejected with 400 before the
   filesystem is consulted at all.

2. Canonical: the candidate is resolve()d (symlinks followed, the path
   made absolute) and must still be the content root or a descendant of
   it. Path.relative_to() compares with the platform's path flavour, so
   the comparison is case-insensitive on Windows and exact elsewhere.
   Anything outside → 403.

=============================================================================
TRAILING SLASH
=============================================================================

A directory requested without a trailing slash is redirected (301) to
the same path plus "/" BEFORE index or listing logic runs. Otherwise a
served index.html at /demo would resolve its relative links ("app.js")
against / instead of /demo/.

=============================================================================
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

from ..http.errors import SecurityViolation
from ..http.mime_types import get_content_type


logger = logging.getLogger(__name__)


INDEX_FILE_NAME = "index.html"


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    url: str
    is_directory: bool


# ─────────────────────────────────────────────────────────────────────────────
# OUTCOMES
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Forbidden:
    pass


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class Redirect:
    location: str


@dataclass(frozen=True)
class FileTarget:
    path: Path
    content_type: str


@dataclass(frozen=True)
class IndexFile:
    path: Path
    content_type: str


@dataclass(frozen=True)
class Listing:
    path: Path
    request_path: str
    parent_url: Optional[str]
    directories: tuple[DirectoryEntry, ...] = field(default_factory=tuple)
    files: tuple[DirectoryEntry, ...] = field(default_factory=tuple)


Resolution = Union[Forbidden, NotFound, Redirect, FileTarget, IndexFile, Listing]


def encode_path(path: str) -> str:
    """Percent-encode each segment of a URL path, keeping the slashes."""
    return "/".join(quote(segment, safe="") for segment in path.split("/"))


def name_sort_key(name: str) -> str:
    """Order names the way the local filesystem compares them."""
    return os.path.normcase(name)


class PathResolver:
    """
    Resolves request paths against a content root.

    Usage:
        resolver = PathResolver(Path("www"))
        outcome = resolver.resolve("/demo/")
    """

    def __init__(self, content_root: Path):
        self.content_root = Path(content_root).resolve()

    def resolve(self, decoded_path: str) -> Resolution:
        """
        Classify a decoded request path.

        Args:
            decoded_path: Percent-decoded URL path, starting with "/".

        Returns:
            One of the outcome dataclasses above.

        Raises:
            SecurityViolation: The path contains "..".
        """
        if ".." in decoded_path:
            raise SecurityViolation()

        relative = decoded_path.lstrip("/")

        try:
            candidate = (self.content_root / relative).resolve()
        except (OSError, RuntimeError, ValueError) as e:
            # symlink loops, embedded NUL bytes
            logger.debug(f"Cannot resolve {decoded_path!r}: {e}")
            return NotFound()

        try:
            candidate.relative_to(self.content_root)
        except ValueError:
            logger.warning(f"Path escapes content root: {decoded_path!r} → {candidate}")
            return Forbidden()

        if candidate.is_dir():
            if not decoded_path.endswith("/"):
                return Redirect(location=encode_path(decoded_path) + "/")

            index = candidate / INDEX_FILE_NAME
            if index.is_file():
                return IndexFile(path=index, content_type=get_content_type(index))

            return self._listing(candidate, decoded_path)

        if candidate.is_file():
            return FileTarget(path=candidate, content_type=get_content_type(candidate))

        return NotFound()

    def _listing(self, directory: Path, decoded_path: str) -> Listing:
        base_url = encode_path(decoded_path)
        directories = []
        files = []

        with os.scandir(directory) as entries:
            for entry in entries:
                href = base_url + quote(entry.name, safe="")
                if entry.is_dir():
                    directories.append(DirectoryEntry(entry.name + "/", href + "/", True))
                else:
                    files.append(DirectoryEntry(entry.name, href, False))

        directories.sort(key=lambda item: name_sort_key(item.name.rstrip("/")))
        files.sort(key=lambda item: name_sort_key(item.name))

        parent_url = None
        if directory != self.content_root:
            parent = decoded_path.rstrip("/").rsplit("/", 1)[0] + "/"
            parent_url = encode_path(parent)

        return Listing(
            path=directory,
            request_path=decoded_path,
            parent_url=parent_url,
            directories=tuple(directories),
            files=tuple(files),
        )
