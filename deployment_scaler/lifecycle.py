"""
Lifecycle — Start, serve, drain, stop.

Order on the way up: initial cache sync (fatal if it fails), then the
HTTP listener. On SIGINT/SIGTERM the listener stops accepting, in-flight
requests get ``shutdown_grace_seconds`` to finish, and the synchronizer
is stopped last.

## Usage

    context = build_context(ScalerSettings.from_env())
    Lifecycle(context).run()
"""

from __future__ import annotations

import logging
import signal
import threading
from typing import Optional

from werkzeug.serving import BaseWSGIServer, make_server

from .api import build_ssl_context, create_app
from .context import ScalerContext

logger = logging.getLogger(__name__)


class Lifecycle:
    """Runs one ScalerContext from startup to shutdown."""

    def __init__(self, context: ScalerContext):
        self.context = context
        self.settings = context.settings
        self.app = create_app(context)
        self._shutdown = threading.Event()
        self._server: Optional[BaseWSGIServer] = None
        self._serve_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Sync the cache and start listening. Raises CacheSyncError on sync failure."""
        self.context.synchronizer.start()
        logger.info(f"Deployment cache synced ({len(self.context.mirror)} deployments)")

        ssl_context = build_ssl_context(self.settings) if self.settings.tls_enabled else None
        self._server = make_server(
            self.settings.host,
            self.settings.port,
            self.app,
            threaded=True,
            ssl_context=ssl_context,
        )
        # Draining is done by the in-flight tracker with a deadline
        self._server.block_on_close = False

        self._serve_thread = threading.Thread(
            target=self._server.serve_forever, name="http-server", daemon=True
        )
        self._serve_thread.start()

        scheme = "https" if ssl_context else "http"
        logger.info(f"Listening on {scheme}://{self.settings.host}:{self._server.server_port}")

    def request_shutdown(self, signum=None, frame=None) -> None:
        if signum is not None:
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self._shutdown.set()

    def wait(self) -> None:
        # Short slices keep the main thread responsive to signals
        while not self._shutdown.wait(0.5):
            pass

    def stop(self) -> None:
        """Stop accepting, drain in-flight requests, stop the synchronizer."""
        if self._server is not None:
            self._server.shutdown()
            grace = self.settings.shutdown_grace_seconds
            if not self.app.config["IN_FLIGHT"].wait_idle(grace):
                logger.warning(
                    f"{self.app.config['IN_FLIGHT'].count} request(s) still running after {grace}s"
                )
            self._server.server_close()
            self._server = None

        self.context.synchronizer.stop()
        logger.info("Shutdown complete")

    def run(self) -> None:
        """Start, block until a shutdown signal, then stop."""
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, self.request_shutdown)
            signal.signal(signal.SIGTERM, self.request_shutdown)

        self.start()
        try:
            self.wait()
        finally:
            self.stop()

    @property
    def port(self) -> Optional[int]:
        return self._server.server_port if self._server is not None else None
