"""Application bootstrap for kubeinvaders.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → connection manager → HTTP server

Shutdown runs in reverse: the live session is torn down first so its watcher
releases the watch stream, then the HTTP server stops, then the K8s client's
connection pool is closed.  Each step's error is caught and logged
independently so one failure does not prevent the rest from shutting down.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kubeinvaders.config import apply_overrides, load_config
from kubeinvaders.errors import ConfigError
from kubeinvaders.models.config import KubeInvadersConfig
from kubeinvaders.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog
    import uvicorn

    from kubeinvaders.cluster.client import ClusterClient
    from kubeinvaders.relay.manager import ConnectionManager

_SHUTDOWN_GRACE_SECONDS = 10


class KubeInvadersApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or has
    already stopped.
    """

    def __init__(self, config: KubeInvadersConfig | None = None) -> None:
        self.config = config
        self._cluster: ClusterClient | None = None
        self._manager: ConnectionManager | None = None
        self._server: uvicorn.Server | None = None
        self._server_task: asyncio.Task[None] | None = None
        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises:
            ConfigError: if cluster credentials cannot be resolved.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("kubeinvaders starting", version=_kubeinvaders_version())

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_cluster_client()

        # --- 4. Connection manager ---------------------------------------
        self._start_manager()

        # --- 5. HTTP / WebSocket server -----------------------------------
        self._start_server()

        self._running = True
        self._log.info(
            "kubeinvaders started",
            port=self.config.server.port,
            websocket=f"ws://localhost:{self.config.server.port}/ws",
        )

    async def _start_cluster_client(self) -> None:
        assert self._log is not None
        assert self.config is not None
        from kubeinvaders.cluster.client import ClusterClient, create_api_client

        api_client = await create_api_client(self.config.cluster)
        self._cluster = ClusterClient(
            api_client,
            list_timeout_seconds=self.config.cluster.list_timeout_seconds,
        )
        self._log.debug("cluster client started", namespace=self.config.cluster.namespace or "*")

    def _start_manager(self) -> None:
        assert self.config is not None
        assert self._cluster is not None
        from kubeinvaders.relay.manager import ConnectionManager

        self._manager = ConnectionManager(
            self._cluster,
            namespace=self.config.cluster.namespace,
            watch_timeout_seconds=self.config.cluster.watch_timeout_seconds,
        )

    def _start_server(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._manager is not None
        import uvicorn

        from kubeinvaders.api import build_app

        fastapi_app = build_app(manager=self._manager, config=self.config)
        uv_config = uvicorn.Config(
            app=fastapi_app,
            host=self.config.server.host,
            port=self.config.server.port,
            log_config=None,  # structlog handles all logging
            access_log=False,
        )
        self._server = uvicorn.Server(uv_config)
        self._server_task = asyncio.create_task(self._server.serve(), name="http-server")
        self._server_task.add_done_callback(self._on_server_exit)

    def _on_server_exit(self, task: asyncio.Task[None]) -> None:
        # uvicorn also exits on its own signal handling or a failed bind.
        if self._running and not task.cancelled():
            if self._log is not None:
                self._log.info("http server exited")
            self._running = False

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._manager is None and self._server is None and self._cluster is None:
            # Never started, or already stopped
            return

        log = self._log or get_logger("app")
        log.info("kubeinvaders shutting down")
        self._running = False

        if self._manager is not None:
            try:
                await asyncio.wait_for(self._manager.close(), timeout=_SHUTDOWN_GRACE_SECONDS)
            except TimeoutError:
                log.warning("session close timed out", timeout=_SHUTDOWN_GRACE_SECONDS)
            except Exception as exc:
                log.error("session close raised an error", error=str(exc))
            self._manager = None

        if self._server is not None and self._server_task is not None:
            self._server.should_exit = True
            try:
                await asyncio.wait_for(self._server_task, timeout=_SHUTDOWN_GRACE_SECONDS)
            except TimeoutError:
                log.warning("http server stop timed out", timeout=_SHUTDOWN_GRACE_SECONDS)
            except Exception as exc:
                log.error("http server stop raised an error", error=str(exc))
            self._server = None
            self._server_task = None

        if self._cluster is not None:
            try:
                await self._cluster.close()
            except Exception as exc:
                log.debug("k8s client close raised (non-fatal)", error=str(exc))
            self._cluster = None

        log.info("kubeinvaders stopped")


def _kubeinvaders_version() -> str:
    from kubeinvaders import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(**overrides: object) -> None:
    """Create the app, register OS signals, run until shutdown is requested.

    Keyword arguments override the environment-loaded configuration
    (see ``kubeinvaders.config.apply_overrides``).
    """
    config = apply_overrides(load_config(), **overrides)
    app = KubeInvadersApp(config)
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_requested.set)

    try:
        await app.start()
        # Block until shutdown is requested or the server dies on its own
        while app.running and not stop_requested.is_set():
            try:
                await asyncio.wait_for(stop_requested.wait(), timeout=1)
            except TimeoutError:
                pass
    except ConfigError as exc:
        log = get_logger("app")
        log.critical("fatal startup error", component="k8s_client", error=str(exc))
        raise SystemExit(1) from exc
    finally:
        await app.stop()
