"""
=============================================================================
APP HOST SERVER
=============================================================================

Wires the pieces together and runs them:

    AppHostServer.run()
        │
        ├──► _setup_logging()            basicConfig + "apphost" level
        ├──► content root created if missing
        ├──► UploadStagingStore.purge_all()   stale stagings from last run
        ├──► ConnectionSupervisor.bind()      real port known from here on
        ├──► RequestRouter(config, listen_url)
        ├──► banner + optional browser launch
        │
        └──► ConnectionSupervisor.start(router.handle_connection)
                 (blocks until Ctrl+C / SIGTERM / stop())

=============================================================================
"""

import logging
import webbrowser
from pathlib import Path
from typing import Optional

from .config import HostConfig
from .core.supervisor import ConnectionSupervisor
from .hosting.uploads import UploadStagingStore
from .http.router import RequestRouter


logger = logging.getLogger(__name__)


class AppHostServer:
    """
    The local app host.

    Usage:
        server = AppHostServer(HostConfig(port=5000, content_root="www"))
        server.run()   # blocks

    From another thread:
        server.stop()
    """

    def __init__(self, config: Optional[HostConfig] = None):
        self.config = config or HostConfig()
        self.config.validate()

        self.content_root = Path(self.config.content_root).resolve()
        self.supervisor = ConnectionSupervisor(self.config)
        self.uploads = UploadStagingStore(self.content_root, self.config.max_upload_bytes)
        self.router: Optional[RequestRouter] = None

    @property
    def address(self) -> Optional[tuple[str, int]]:
        return self.supervisor.bound_address

    @property
    def listen_url(self) -> str:
        address = self.address
        if address is None:
            return self.config.listen_url
        return HostConfig(host=self.config.host, port=address[1]).listen_url

    def run(self) -> None:
        """Start serving. Blocks until shutdown."""
        self._setup_logging()

        self.content_root.mkdir(parents=True, exist_ok=True)
        self.uploads.purge_all()

        self.supervisor.bind()
        self.router = RequestRouter(self.config, listen_url=self.listen_url, uploads=self.uploads)

        logger.info(f"Serving {self.content_root} at {self.listen_url}")
        self._print_startup_banner()

        if self.config.open_browser:
            self._open_browser()

        try:
            self.supervisor.start(self.router.handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
            self.supervisor.shutdown()
        finally:
            logger.info("Server stopped")

    def stop(self) -> None:
        self.supervisor.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self.supervisor.wait_until_ready(timeout)

    def _print_startup_banner(self):
        print()
        print(f"  {self.config.server_name}")
        print(f"  Content root: {self.content_root}")
        print(f"  Listening on: {self.listen_url}")
        print("  Press Ctrl+C to stop")
        print()

    def _open_browser(self):
        try:
            if not webbrowser.open(self.listen_url):
                logger.info("No browser available; open the URL above manually")
        except webbrowser.Error as e:
            logger.warning(f"Failed to open browser: {e}")

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("apphost").setLevel(level)
