"""Run the control API inside a host process on a background thread."""

from __future__ import annotations

import logging
import threading
from typing import Optional

import uvicorn

from pprofsvc.core.config import AppConfig
from pprofsvc.session import SessionController

from .main import create_app

logger = logging.getLogger(__name__)


class ProfilingServer:
    """uvicorn server bound to ``localhost:<port>`` serving one controller."""

    def __init__(self, config: AppConfig, controller: Optional[SessionController] = None):
        self.config = config
        self.controller = controller or SessionController.from_config(config)
        self.app = create_app(config, self.controller)
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> str:
        return f"{self.config.server.host}:{self.config.server.port}"

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        server_config = uvicorn.Config(
            self.app,
            host=self.config.server.host,
            port=self.config.server.port,
            log_level=self.config.server.log_level,
        )
        self._server = uvicorn.Server(server_config)
        self._thread = threading.Thread(
            target=self._server.run, name="pprofsvc-http", daemon=True
        )
        self._thread.start()
        logger.info("pprof listen addr=[%s]", self.address)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop any running session, then stop accepting requests."""
        self.controller.close()
        if self._server is None:
            return
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Control server did not stop within %.1fs", timeout)
        self._server = None
        self._thread = None


def serve(config: Optional[AppConfig] = None) -> ProfilingServer:
    """Start the control API in the background and return its handle."""
    server = ProfilingServer(config or AppConfig())
    server.start()
    return server
