"""Periodic self-healing sweeps.

Watches can drop events; these sweeps make convergence independent of watch
delivery. Each runs on its own fixed ticker:

    resync  -- re-enqueue every virtual object (also retries objects whose
               last write was rejected by the host).
    gc      -- enqueue host objects whose virtual counterpart is gone and
               remove node Services for nodes that no longer exist.

A failure on one item is counted and the sweep moves on; each pass ends
with a single summary log line.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

from vcsync.clients.base import ClusterClient
from vcsync.controller.controller import SyncController
from vcsync.controller.nodeservice import NODE_GVK, NodeServiceProvider
from vcsync.models.objects import name_of
from vcsync.observability.logging import get_logger
from vcsync.observability.metrics import sweep_errors_total

_log = get_logger("controller.sweeps")


class SweepRunner:
    """Owns the resync and garbage-collection tickers."""

    def __init__(
        self,
        controllers: Sequence[SyncController],
        resync_interval: float = 300.0,
        gc_interval: float = 60.0,
        node_services: NodeServiceProvider | None = None,
        virtual_client: ClusterClient | None = None,
    ) -> None:
        self._controllers = list(controllers)
        self._virtual_client = virtual_client
        self._resync_interval = resync_interval
        self._gc_interval = gc_interval
        self._node_services = node_services
        self._tasks: list[asyncio.Task[None]] = []

    async def resync_once(self) -> int:
        enqueued = 0
        errors = 0
        for controller in self._controllers:
            for key in controller.virtual_keys():
                if controller.enqueue(key):
                    enqueued += 1
                else:
                    errors += 1
        self._summarize("resync", enqueued, errors)
        return enqueued

    async def gc_once(self) -> int:
        enqueued = 0
        errors = 0
        for controller in self._controllers:
            try:
                orphans = controller.orphaned_keys()
            except Exception as exc:
                errors += 1
                _log.warning("gc listing failed", kind=controller.kind, error=str(exc))
                continue
            for key in orphans:
                if controller.enqueue(key):
                    enqueued += 1
                else:
                    errors += 1

        if self._node_services is not None and self._virtual_client is not None:
            try:
                nodes = await self._virtual_client.list(NODE_GVK)
                await self._node_services.cleanup(name_of(node) for node in nodes.items)
            except Exception as exc:
                errors += 1
                _log.warning("node service cleanup failed", error=str(exc))

        self._summarize("gc", enqueued, errors)
        return enqueued

    @staticmethod
    def _summarize(sweep: str, enqueued: int, errors: int) -> None:
        if errors:
            sweep_errors_total.labels(sweep=sweep).inc(errors)
            _log.warning("sweep finished with errors", sweep=sweep, enqueued=enqueued, errors=errors)
        else:
            _log.debug("sweep finished", sweep=sweep, enqueued=enqueued)

    async def _ticker(self, name: str, interval: float, fn: Callable[[], Awaitable[int]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await fn()
            except Exception as exc:
                sweep_errors_total.labels(sweep=name).inc()
                _log.error("sweep failed", sweep=name, error=str(exc))

    def start(self) -> list[asyncio.Task[None]]:
        if not self._tasks:
            resync = self._ticker("resync", self._resync_interval, self.resync_once)
            gc = self._ticker("gc", self._gc_interval, self.gc_once)
            self._tasks = [
                asyncio.create_task(resync, name="sweep-resync"),
                asyncio.create_task(gc, name="sweep-gc"),
            ]
        return self._tasks

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
