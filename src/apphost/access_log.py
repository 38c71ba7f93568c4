"""
=============================================================================
ACCESS LOG
=============================================================================

One line per answered request on the "apphost.access" logger, kept apart
from the diagnostic loggers so it can be routed or silenced on its own.

TEXT (Apache-like):
    127.0.0.1 - - [19/Oct/2026:12:00:00 +0000] "GET /demo/ HTTP/1.1" 200 1234 3.21ms

JSON (for log aggregators):
    {"timestamp": "2026-10-19T12:00:00+00:00", "client_ip": "127.0.0.1",
     "method": "GET", "path": "/demo/", "status": 200, ...}

=============================================================================
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional


access_logger = logging.getLogger("apphost.access")


@dataclass
class RequestLog:
    timestamp: str
    client_ip: str
    method: str
    path: str
    status: int
    bytes_sent: int
    duration_ms: float
    connection_id: str
    user_agent: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    def to_text(self) -> str:
        ts = datetime.fromisoformat(self.timestamp).strftime("%d/%b/%Y:%H:%M:%S %z")
        return (
            f'{self.client_ip} - - [{ts}] '
            f'"{self.method} {self.path} HTTP/1.1" '
            f'{self.status} {self.bytes_sent} '
            f'{self.duration_ms:.2f}ms'
        )


def log_request(entry: RequestLog, log_format: str = "text") -> None:
    """Emit one access line; 4xx/5xx go out at WARNING."""
    level = logging.WARNING if entry.status >= 400 else logging.INFO
    if not access_logger.isEnabledFor(level):
        return

    if log_format == "json":
        access_logger.log(level, json.dumps(entry.to_dict()))
    else:
        access_logger.log(level, entry.to_text())
