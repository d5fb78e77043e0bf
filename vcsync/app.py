"""Application bootstrap for vcsync.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> cluster clients -> sync context
              -> controllers (caches, sync barrier, workers) -> sweeps -> REST

Shutdown is fully graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single component failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from vcsync.config import load_config
from vcsync.models.config import VcSyncConfig
from vcsync.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from vcsync.clients.base import ClusterClient
    from vcsync.controller.controller import SyncController
    from vcsync.sync.context import SyncContext

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class VcSyncApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self, config: VcSyncConfig | None = None) -> None:
        self.config: VcSyncConfig | None = config

        self._virtual_client: ClusterClient | None = None
        self._host_client: ClusterClient | None = None
        self._ctx: SyncContext | None = None
        self._controllers: list[SyncController] = []
        self._sweeps: object | None = None
        self._rest_server: object | None = None

        # Background tasks that must be cancelled on shutdown
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        The caller (main()) turns this into a non-zero exit.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info(
            "vcsync starting",
            version=_vcsync_version(),
            instance=self.config.translate.name,
            multi_namespace=self.config.translate.multi_namespace,
        )

        # --- 3. Cluster clients -----------------------------------------
        await self._start_clients()

        # --- 4. Sync context --------------------------------------------
        self._build_context()

        # --- 5. Controllers ---------------------------------------------
        await self._start_controllers()

        # --- 6. Sweeps --------------------------------------------------
        self._start_sweeps()

        # --- 7. REST API ------------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("vcsync started", kinds=[c.kind for c in self._controllers], port=self.config.api.port)

    async def _start_clients(self) -> None:
        """Build the virtual and host clients from kubeconfig or in-cluster config."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting cluster clients")
        try:
            from vcsync.clients.kube import KubeClusterClient, load_api_client

            virtual_api = await load_api_client(self.config.clusters.virtual_kubeconfig)
            host_api = await load_api_client(self.config.clusters.host_kubeconfig)
            self._virtual_client = KubeClusterClient("virtual", virtual_api)
            self._host_client = KubeClusterClient("host", host_api)
            self._log.info(
                "cluster clients configured",
                virtual=self.config.clusters.virtual_kubeconfig or "in-cluster",
                host=self.config.clusters.host_kubeconfig or "in-cluster",
            )
        except Exception as exc:
            raise _ComponentError("clients", exc) from exc

    def _build_context(self) -> None:
        assert self.config is not None
        assert self._virtual_client is not None
        assert self._host_client is not None
        try:
            from vcsync.controller.events import EventRecorder
            from vcsync.controller.nodeservice import NodeServiceProvider
            from vcsync.sync.context import SyncContext

            self._ctx = SyncContext.build(
                self.config.translate,
                self._virtual_client,
                self._host_client,
                events=EventRecorder(self._virtual_client),
                node_services=NodeServiceProvider(self._host_client, self.config.translate),
            )
        except Exception as exc:
            raise _ComponentError("context", exc) from exc

    async def _start_controllers(self) -> None:
        """One controller per enabled kind; each passes its cache sync barrier before workers start."""
        assert self._log is not None
        assert self.config is not None
        assert self._ctx is not None
        self._log.debug("starting controllers")
        try:
            from vcsync.controller.controller import SyncController
            from vcsync.sync.engine import SyncEngine
            from vcsync.sync.kinds import default_registry
            from vcsync.sync.mutation import WebhookMutationHook
            from vcsync.sync.snapshots import SnapshotCache

            hook = None
            if self.config.controller.mutation_webhook_url:
                hook = WebhookMutationHook(self.config.controller.mutation_webhook_url)

            snapshots = SnapshotCache()
            for descriptor in default_registry().enabled(self.config.controller.enabled_kinds):
                engine = SyncEngine(descriptor, self._ctx, snapshots=snapshots, mutation_hook=hook)
                controller = SyncController(engine, self._ctx, self.config.controller)
                self._controllers.append(controller)
                await controller.start()
        except Exception as exc:
            raise _ComponentError("controllers", exc) from exc

    def _start_sweeps(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._ctx is not None
        from vcsync.controller.sweeps import SweepRunner

        sweeps = SweepRunner(
            self._controllers,
            resync_interval=self.config.controller.resync_interval,
            gc_interval=self.config.controller.gc_interval,
            node_services=self._ctx.node_services,
            virtual_client=self._virtual_client,
        )
        self._background_tasks.extend(sweeps.start())
        self._sweeps = sweeps
        self._log.info(
            "sweeps started",
            resync_interval=self.config.controller.resync_interval,
            gc_interval=self.config.controller.gc_interval,
        )

    async def _start_rest(self) -> None:
        """Start the uvicorn server for probes, metrics and status."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn  # type: ignore[import-untyped]

            from vcsync.api import build_app

            fastapi_app = build_app(controllers=self._controllers, config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("vcsync shutting down")

        self._running = False

        # Cancel background tasks first so sweeps stop producing keys
        # before the queues are torn down.
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_component("rest", self._rest_server)
        await self._stop_component("sweeps", self._sweeps)
        for controller in reversed(self._controllers):
            await self._stop_component(f"controller.{controller.kind}", controller)
        self._controllers.clear()
        await self._stop_component("host_client", self._host_client)
        await self._stop_component("virtual_client", self._virtual_client)

        log.info("vcsync stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))


def _vcsync_version() -> str:
    from vcsync import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = VcSyncApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        # Block until shutdown is triggered (background tasks run concurrently)
        while app._running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
