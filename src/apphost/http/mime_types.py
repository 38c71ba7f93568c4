"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to the Content-Type sent for static files.

The table is built once at import time and exposed through a read-only
MappingProxyType, so every connection thread can share it without locking.
Text types that browsers would otherwise guess the charset for carry an
explicit "; charset=utf-8".

    index.html      → text/html; charset=utf-8
    app.js          → application/javascript
    icon.PNG        → image/png          (extension is lower-cased first)
    data.bin        → application/octet-stream

=============================================================================
"""

from pathlib import Path
from types import MappingProxyType
from typing import Mapping


MIME_TYPES: Mapping[str, str] = MappingProxyType({
    # -------------------------------------------------------------------------
    # DOCUMENTS / SCRIPTS
    # -------------------------------------------------------------------------
    ".html": "text/html; charset=utf-8",
    ".htm": "text/html; charset=utf-8",
    ".css": "text/css",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".webmanifest": "application/manifest+json",
    ".xml": "application/xml",
    ".txt": "text/plain; charset=utf-8",
    ".csv": "text/csv; charset=utf-8",

    # -------------------------------------------------------------------------
    # IMAGES
    # -------------------------------------------------------------------------
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".ico": "image/x-icon",

    # -------------------------------------------------------------------------
    # FONTS
    # -------------------------------------------------------------------------
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # -------------------------------------------------------------------------
    # BINARY / MEDIA
    # -------------------------------------------------------------------------
    ".wasm": "application/wasm",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
})

# "I don't know what this is, treat it as bytes"
DEFAULT_MIME_TYPE = "application/octet-stream"

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"


def get_content_type(path: str | Path) -> str:
    """
    Get the Content-Type header value for a file.

    Args:
        path: File path or bare file name.

    Returns:
        The mapped type, or application/octet-stream for unknown extensions.
    """
    extension = Path(path).suffix.lower()
    return MIME_TYPES.get(extension, DEFAULT_MIME_TYPE)
