"""
=============================================================================
CONNECTION SUPERVISOR
=============================================================================

Owns the listening socket. Accepts connections one at a time on a single
thread and starts one worker thread per accepted connection, so a slow
client never holds up the accept loop or any other client.

    ┌────────────────────────────┐
    │  accept loop (1 thread)    │
    │                            │
    │   accept() ──► Connection ─┼──► Thread(handler, conn) ──► handler(conn)
    │      ▲                     │──► Thread(handler, conn) ──► handler(conn)
    │      └──── 1s timeout ─────┤──► ...
    │         (check _running)   │
    └────────────────────────────┘

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR   restart immediately without "Address already in use"
               while old sockets sit in TIME_WAIT
TCP_NODELAY    send small responses right away (no Nagle buffering)
settimeout(1)  accept() wakes up every second to notice shutdown()

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

SIGINT (Ctrl+C) or SIGTERM → shutdown():

    1. stop accepting (the loop exits within a second)
    2. close the listening socket
    3. join the in-flight worker threads, up to shutdown_timeout
       (workers are never interrupted mid-response)

Signal handlers can only be installed from the main thread. When the
supervisor runs in a background thread (tests, embedding) it skips them
and relies on shutdown() being called directly.

=============================================================================
"""

import time
import socket
import signal
import logging
import threading
from typing import Callable, Optional

from ..config import HostConfig
from .connection import Connection


logger = logging.getLogger(__name__)


ConnectionHandler = Callable[[Connection], None]


class ConnectionSupervisor:
    """
    Accept loop with one thread per connection.

    Usage:
        supervisor = ConnectionSupervisor(config)
        supervisor.bind()
        print(supervisor.bound_address)
        supervisor.start(router.handle_connection)   # blocks until shutdown
    """

    def __init__(self, config: HostConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready = threading.Event()
        self._stopped = threading.Event()

        self._workers: set[threading.Thread] = set()
        self._workers_lock = threading.Lock()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def bound_address(self) -> Optional[tuple[str, int]]:
        """(host, port) actually bound; the real port when config.port is 0."""
        if self._socket is None:
            return None
        host, port = self._socket.getsockname()[:2]
        return host, port

    @property
    def active_connections(self) -> int:
        with self._workers_lock:
            return len(self._workers)

    # =========================================================================
    # SOCKET SETUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def bind(self) -> tuple[str, int]:
        """
        Create, bind and listen.

        Returns:
            The bound (host, port).

        Raises:
            OSError: The address is in use or not available.
        """
        if self._socket is not None:
            return self.bound_address

        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise

        self._socket = sock
        host, port = self.bound_address
        logger.info(f"Listening on {host}:{port}")
        return host, port

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread; signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
            self.shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def start(self, handler: ConnectionHandler) -> None:
        """
        Accept connections until shutdown() is called.

        Args:
            handler: Called with each Connection on its own thread. It
                owns the connection and must close it.
        """
        self.bind()
        self._running = True
        self._stopped.clear()
        self._setup_signals()
        self._ready.set()

        try:
            self._accept_loop(handler)
        finally:
            self._cleanup()

    def _accept_loop(self, handler: ConnectionHandler) -> None:
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
            )
            logger.debug(f"[{conn.id}] Accepted {conn.client_ip}:{conn.client_port}")

            worker = threading.Thread(
                target=self._run_worker,
                args=(handler, conn),
                name=f"conn-{conn.id}",
                daemon=True,
            )
            with self._workers_lock:
                self._workers.add(worker)
            worker.start()

    def _run_worker(self, handler: ConnectionHandler, conn: Connection) -> None:
        try:
            handler(conn)
        except Exception:
            logger.exception(f"[{conn.id}] Connection handler failed")
            conn.close()
        finally:
            with self._workers_lock:
                self._workers.discard(threading.current_thread())

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self) -> None:
        """Stop accepting new connections. Safe to call more than once."""
        if self._running:
            logger.info("Stopping accept loop...")
        self._running = False

    def _cleanup(self) -> None:
        self._restore_signals()

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._drain_workers(self.config.shutdown_timeout)
        self._ready.clear()
        self._stopped.set()
        logger.info("Connection supervisor stopped")

    def _drain_workers(self, timeout: Optional[float]) -> None:
        """Wait for in-flight connections to finish on their own."""
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._workers_lock:
            pending = list(self._workers)

        if pending:
            logger.info(f"Waiting for {len(pending)} in-flight connection(s)...")

        for worker in pending:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            worker.join(remaining)

        with self._workers_lock:
            leftover = len(self._workers)
        if leftover:
            logger.warning(f"{leftover} connection(s) still running after {timeout}s")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop is running (for embedders and tests)."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until start() has returned."""
        return self._stopped.wait(timeout)
