"""
=============================================================================
APPHOST - Local Host for a Folder of Web Apps
=============================================================================

Serves every subdirectory of a content root as an independent web app,
shows them in a gallery at /, and exposes a small JSON API for editing
each app's name, description, tags and icon.

Everything sits directly on TCP sockets: the request reader, response
framer and router are implemented here, not borrowed from http.server.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    apphost/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m apphost)
    ├── server.py            # AppHostServer: wiring and startup
    ├── config.py            # HostConfig dataclass
    ├── rendering.py         # HTML pages (gallery, listing, status)
    ├── access_log.py        # One line per request
    ├── core/
    │   ├── supervisor.py    # Accept loop, one thread per connection
    │   └── connection.py    # Client socket wrapper
    ├── http/
    │   ├── request.py       # Bounded request reader
    │   ├── response.py      # Response framer
    │   ├── router.py        # Per-connection dispatch + error boundary
    │   ├── errors.py        # HTTPStatusError hierarchy
    │   ├── status_codes.py  # HTTPStatus enum
    │   └── mime_types.py    # Extension → Content-Type
    ├── hosting/
    │   ├── paths.py         # URL path → file / index / listing / ...
    │   ├── uploads.py       # Image staging store
    │   └── manifest.py      # manifest.json read/save/defaults
    └── handlers/
        ├── static.py        # Gallery and static files
        └── api.py           # /api/ endpoints

=============================================================================
QUICK START
=============================================================================

    from apphost import AppHostServer, HostConfig

    AppHostServer(HostConfig(port=5000, content_root="www")).run()

=============================================================================
"""

__version__ = "0.1.0"

from .config import HostConfig
from .server import AppHostServer

__all__ = ["AppHostServer", "HostConfig", "__version__"]
