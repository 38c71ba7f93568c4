"""
=============================================================================
HOST CONFIGURATION
=============================================================================

All tunables of the server in one dataclass. Sources, lowest priority
first:

    1. defaults below
    2. a JSON settings file          --config appsettings.json
    3. APPHOST_* environment vars    APPHOST_PORT=8080
    4. command-line flags            --port 8080 / bare "8080"

Validation happens once, at startup, so a bad value fails immediately
with a clear message instead of surfacing mid-request.

=============================================================================
SETTINGS FILE
=============================================================================

Either flat keys or a "Hosting" section; key case does not matter:

    {
      "Hosting": {
        "Port": 5000,
        "ContentRoot": "www",
        "OpenBrowser": false
      }
    }

=============================================================================
"""

import os
import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional


ENV_PREFIX = "APPHOST_"

LOG_FORMATS = ("text", "json")

_LOCAL_HOSTS = ("", "0.0.0.0", "127.0.0.1", "::", "::1", "localhost")


@dataclass
class HostConfig:
    """
    Configuration for the app host.

    Development:
        HostConfig(port=5000, content_root="www", log_level="DEBUG")

    Tests:
        HostConfig(port=0, content_root=tmp_path, open_browser=False)
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Interface to bind. Loopback only by default: this is a local tool."""

    port: int = 5000
    """Port to listen on. 0 lets the OS pick a free one."""

    backlog: int = 128
    """Accept queue length."""

    buffer_size: int = 4096
    """Bytes requested per recv() call."""

    timeout: Optional[float] = None
    """
    Per-connection socket timeout in seconds.
    None = no server-enforced timeout; a stalled client keeps its thread.
    """

    shutdown_timeout: float = 30.0
    """How long shutdown waits for in-flight connections."""

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    content_root: str = "www"
    """Directory whose subdirectories are the hosted apps."""

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS
    # ─────────────────────────────────────────────────────────────────────

    max_header_bytes: int = 32 * 1024
    """Request line + headers; larger requests get 431."""

    max_body_bytes: int = 8 * 1024 * 1024
    """Declared Content-Length above this gets 413."""

    max_upload_bytes: int = 5 * 1024 * 1024
    """Largest image the staging store accepts."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """Access log format: 'text' (Apache-like) or 'json'."""

    server_name: str = "AppHost/0.1"
    """Value of the Server header."""

    open_browser: bool = True
    """Open the home page in the default browser after startup."""

    @property
    def listen_url(self) -> str:
        """URL a local browser should use to reach the server."""
        host = "localhost" if self.host in _LOCAL_HOSTS else self.host
        if ":" in host:
            host = f"[{host}]"
        return f"http://{host}:{self.port}/"

    @classmethod
    def from_env(cls, base: Optional["HostConfig"] = None) -> "HostConfig":
        """
        Apply APPHOST_* environment variables on top of base (or defaults).

        APPHOST_HOST, APPHOST_PORT, APPHOST_CONTENT_ROOT, APPHOST_TIMEOUT,
        APPHOST_LOG_LEVEL, APPHOST_LOG_FORMAT, APPHOST_OPEN_BROWSER, ...
        (one variable per field, upper-cased).

        Raises:
            ValueError: A variable does not convert to the field's type.
        """
        config = base or cls()
        values = {}
        for f in fields(cls):
            raw = os.getenv(ENV_PREFIX + f.name.upper())
            if raw is not None:
                values[f.name] = raw
        return config._merged(values)

    @classmethod
    def from_file(cls, path: str | Path, base: Optional["HostConfig"] = None) -> "HostConfig":
        """
        Apply a JSON settings file on top of base (or defaults).

        Raises:
            OSError: The file cannot be read.
            ValueError: Invalid JSON or values.
        """
        with open(path, encoding="utf-8-sig") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object")

        section = next(
            (value for key, value in data.items() if key.lower() == "hosting" and isinstance(value, dict)),
            data,
        )
        values = {_snake_case(key): value for key, value in section.items()}
        return (base or cls())._merged(values)

    def _merged(self, values: dict[str, Any]) -> "HostConfig":
        known = {f.name: f for f in fields(self)}
        updates = {}
        for name, value in values.items():
            if name in known:
                updates[name] = _convert(name, known[name].default, value)
        return type(self)(**{**self.__dict__, **updates})

    def validate(self) -> None:
        """Fail fast on impossible values."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        for name in ("max_header_bytes", "max_body_bytes", "max_upload_bytes", "backlog"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.shutdown_timeout < 0:
            raise ValueError("shutdown_timeout must be >= 0")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")

        if not str(self.content_root).strip():
            raise ValueError("content_root must not be empty")


def _snake_case(key: str) -> str:
    """'ContentRoot' / 'contentRoot' / 'content_root' → 'content_root'."""
    out = []
    for index, char in enumerate(key):
        if char.isupper() and index and key[index - 1] != "_":
            out.append("_")
        out.append(char.lower())
    return "".join(out)


def _convert(name: str, default: Any, value: Any) -> Any:
    if value is None or value == "":
        return None if name == "timeout" else default

    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{name}: expected a boolean, got {value!r}")

    if isinstance(default, int):
        return int(value)

    if isinstance(default, float) or name == "timeout":
        return float(value)

    return str(value)


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# HostConfig()                      defaults
# HostConfig.from_file(path, base)  JSON settings ("Hosting" section or flat)
# HostConfig.from_env(base)         APPHOST_* variables
# config.validate()                 fail fast at startup
# config.listen_url                 http://localhost:<port>/
# =============================================================================
