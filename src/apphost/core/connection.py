"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket for the lifetime of a single
request/response exchange.

Every connection handles exactly ONE request and is then closed (there is
no keep-alive), so the lifecycle is a straight line:

    ┌─────┐  recv()  ┌─────────┐  sendall()  ┌─────────┐  close()  ┌────────┐
    │ NEW │ ───────► │ READING │ ──────────► │ WRITING │ ────────► │ CLOSED │
    └─────┘          └─────────┘  sendfile() └─────────┘           └────────┘
        │                 │                                            ▲
        └─────────────────┴─────────── idle close / error ─────────────┘

The wrapper exposes the same recv()/sendall()/sendfile() names as a raw
socket, so the request reader and the response framer work on either.
On top of that it tracks what the router needs to know for error handling
and logging:

    response_started   True once any response byte was handed to the OS.
                       After that point an error can only be logged,
                       never answered with a second response.
    bytes_sent         Total bytes written (headers + body).

=============================================================================
"""

import time
import uuid
import socket
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Optional


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    WRITING = "writing"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    One client connection.

    Usage:
        with Connection(socket=client_socket, address=client_address) as conn:
            data = conn.recv(4096)
            conn.sendall(b"HTTP/1.1 200 OK\\r\\n...")
        # closed here
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    buffer_size: int = 4096
    timeout: Optional[float] = None

    bytes_sent: int = 0
    response_started: bool = False

    def __post_init__(self):
        # None = block forever; the server imposes no request timeout by default
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else "-"

    @property
    def client_port(self) -> int:
        return self.address[1] if self.address else 0

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def recv(self, bufsize: Optional[int] = None) -> bytes:
        """
        Receive up to bufsize bytes.

        Returns:
            Received bytes, or b"" if the peer closed or reset the
            connection.

        Raises:
            socket.timeout: Only when a timeout was configured.
        """
        self.state = ConnectionState.READING
        try:
            return self.socket.recv(bufsize or self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def sendall(self, data: bytes) -> None:
        """
        Send all of data.

        Failures propagate: a half-sent response is reported by the caller,
        not hidden here.
        """
        self.state = ConnectionState.WRITING
        self.response_started = True
        self.socket.sendall(data)
        self.bytes_sent += len(data)

    def sendfile(self, file: BinaryIO, offset: int = 0, count: Optional[int] = None) -> int:
        """Stream a file to the client without buffering it in memory."""
        self.state = ConnectionState.WRITING
        self.response_started = True
        sent = self.socket.sendfile(file, offset, count)
        self.bytes_sent += sent
        return sent

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): tell the client we're done sending (FIN)
        2. drain whatever the client still sends, briefly
        3. close(): release the descriptor

        Draining matters for requests we rejected before reading their
        body: closing with unread data makes the kernel send RST, and the
        client may lose our error response.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s, {self.bytes_sent} bytes sent")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
