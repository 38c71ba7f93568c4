"""
pytest configuration and fixtures.
"""

import io
import json
import socket
import threading
import time
from dataclasses import dataclass
from typing import Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from apphost import AppHostServer, HostConfig


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(92))


class FakeConnection:
    """
    In-memory stand-in for core.connection.Connection.

    Incoming bytes are served in chunks of at most chunk_size; everything
    written ends up in .output.
    """

    def __init__(self, data: bytes = b"", chunk_size: int = 4096, address=("127.0.0.1", 50000)):
        self._incoming = io.BytesIO(data)
        self.chunk_size = chunk_size
        self.address = address
        self.id = "test0001"
        self.output = bytearray()
        self.response_started = False
        self.bytes_sent = 0
        self.closed = False
        self.sendfile_calls = 0

    @property
    def client_ip(self) -> str:
        return self.address[0]

    def recv(self, bufsize: Optional[int] = None) -> bytes:
        return self._incoming.read(min(bufsize or self.chunk_size, self.chunk_size))

    def sendall(self, data: bytes) -> None:
        self.response_started = True
        self.output += data
        self.bytes_sent += len(data)

    def sendfile(self, file, offset: int = 0, count: Optional[int] = None) -> int:
        self.response_started = True
        self.sendfile_calls += 1
        file.seek(offset)
        data = file.read() if count is None else file.read(count)
        self.output += data
        self.bytes_sent += len(data)
        return len(data)

    def close(self) -> None:
        self.closed = True


@dataclass
class ParsedResponse:
    status: int
    reason: str
    header_lines: list
    headers: dict
    body: bytes

    @property
    def header_names(self) -> list:
        return [name for name, _ in self.header_lines]

    def json(self):
        return json.loads(self.body.decode("utf-8"))


def parse_http_response(raw: bytes) -> ParsedResponse:
    head, _, body = bytes(raw).partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    _, status, reason = lines[0].split(" ", 2)
    header_lines = []
    for line in lines[1:]:
        name, _, value = line.partition(":")
        header_lines.append((name, value.strip()))
    return ParsedResponse(
        status=int(status),
        reason=reason,
        header_lines=header_lines,
        headers={name.lower(): value for name, value in header_lines},
        body=body,
    )


def build_request(
    method: str,
    target: str,
    body: bytes = b"",
    headers: Optional[dict] = None,
) -> bytes:
    lines = [f"{method} {target} HTTP/1.1", "Host: localhost"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    if body:
        lines.append(f"Content-Length: {len(body)}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body


def json_request(method: str, target: str, payload) -> bytes:
    body = json.dumps(payload).encode("utf-8")
    return build_request(method, target, body, {"Content-Type": "application/json"})


@pytest.fixture
def fake_connection():
    """Factory for FakeConnection objects."""
    return FakeConnection


@pytest.fixture
def parse_response():
    return parse_http_response


@pytest.fixture
def http_request():
    return build_request


@pytest.fixture
def json_http_request():
    return json_request


@pytest.fixture
def png_bytes() -> bytes:
    """100 bytes that start like a PNG."""
    return PNG_BYTES


@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    """
    A small content root:

        www/
        ├── demo/        index.html, app.js, icon.png, manifest.json
        ├── notes/       no index: B.txt, a.txt, sub/
        ├── my app/      index.html
        ├── .hidden/
        └── hello.txt
    """
    root = tmp_path / "www"
    root.mkdir()

    demo = root / "demo"
    demo.mkdir()
    (demo / "index.html").write_text("<h1>Demo</h1>", encoding="utf-8")
    (demo / "app.js").write_text("console.log('demo');", encoding="utf-8")
    (demo / "icon.png").write_bytes(PNG_BYTES)
    (demo / "manifest.json").write_text(
        json.dumps({"name": "Demo App", "tags": ["Games", "canvas", "games"], "image": "icon.png"}),
        encoding="utf-8",
    )

    notes = root / "notes"
    notes.mkdir()
    (notes / "B.txt").write_text("b", encoding="utf-8")
    (notes / "a.txt").write_text("a", encoding="utf-8")
    (notes / "sub").mkdir()

    spaced = root / "my app"
    spaced.mkdir()
    (spaced / "index.html").write_text("<h1>Spaced</h1>", encoding="utf-8")

    (root / ".hidden").mkdir()
    (root / "hello.txt").write_text("hello world\n", encoding="utf-8")

    return root


@pytest.fixture
def config(content_root: Path) -> HostConfig:
    """Test configuration: ephemeral port, no browser."""
    return HostConfig(
        host="127.0.0.1",
        port=0,
        content_root=str(content_root),
        open_browser=False,
        log_level="WARNING",
        shutdown_timeout=5.0,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class RunningServer:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: AppHostServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start server in background thread and wait for the accept loop."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.stop()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def exchange(self, data: bytes, timeout: float = 5.0) -> bytes:
        """Send raw bytes, read until the server closes the connection."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=timeout) as sock:
            sock.sendall(data)
            chunks = []
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)

    def request(self, data: bytes) -> ParsedResponse:
        return parse_http_response(self.exchange(data))


@pytest.fixture
def start_server(config: HostConfig) -> Generator:
    """Factory: start a server (optionally with a custom config); all are stopped at teardown."""
    started = []

    def _start(custom: Optional[HostConfig] = None) -> RunningServer:
        server = RunningServer(AppHostServer(custom or config))
        server.start()
        started.append(server)
        return server

    yield _start

    for server in started:
        server.stop()


@pytest.fixture
def running_server(start_server) -> RunningServer:
    """A real server on an ephemeral port, serving content_root."""
    return start_server()


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def eventually():
    """Poll a predicate until it holds or the timeout expires."""
    return wait_for
