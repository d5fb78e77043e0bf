"""Wires caches -> work queue -> engine for one kind.

Virtual events enqueue the object's own key. Host events are mapped back to
the virtual key through the identity annotations; host objects without them
cannot belong to this instance and are ignored.
"""

from __future__ import annotations

from typing import Any

from vcsync.cache.object_cache import ObjectCache
from vcsync.controller.queue import QueueFullError, WorkQueue
from vcsync.models.config import ControllerConfig, LegacyMarkerPolicy
from vcsync.models.objects import KubeObject, ObjectKey
from vcsync.observability.logging import get_logger
from vcsync.sync.context import HOST, VIRTUAL, SyncContext
from vcsync.sync.engine import SyncEngine
from vcsync.translate.constants import MARKER_LABEL


class CacheSyncTimeoutError(Exception):
    """A cache did not complete its initial List in time."""


def host_label_selector(ctx: SyncContext) -> str | None:
    """Server-side filter for host watches: only objects carrying our marker.

    Legacy marker values cannot be expressed in one equality selector, so
    accepting them means watching unfiltered and relying on the ownership check.
    """
    if ctx.config.legacy_marker_policy == LegacyMarkerPolicy.ACCEPT_LEGACY:
        return None
    return f"{MARKER_LABEL}={ctx.config.name}"


def host_watch_namespace(ctx: SyncContext) -> str | None:
    if ctx.config.multi_namespace:
        return None
    return ctx.config.target_namespace


class SyncController:
    """One kind's caches, queue and engine."""

    def __init__(
        self,
        engine: SyncEngine,
        ctx: SyncContext,
        config: ControllerConfig | None = None,
        virtual_cache: ObjectCache | None = None,
        host_cache: ObjectCache | None = None,
    ) -> None:
        config = config or ControllerConfig()
        self.engine = engine
        self._ctx = ctx
        self._config = config
        gvk = engine.gvk
        self.virtual_cache = virtual_cache or ObjectCache(ctx.virtual_client, gvk)
        self.host_cache = host_cache or ObjectCache(
            ctx.host_client,
            gvk,
            namespace=host_watch_namespace(ctx),
            label_selector=host_label_selector(ctx),
        )
        self.queue = WorkQueue(
            engine.reconcile,
            name=gvk.kind,
            workers=config.workers,
            max_requeues=config.max_requeues,
            max_size=config.queue_size,
        )
        self.virtual_cache.add_handler(self._on_virtual_event)
        self.host_cache.add_handler(self._on_host_event)
        self._log = get_logger("controller").bind(kind=gvk.kind)

    @property
    def kind(self) -> str:
        return self.engine.gvk.kind

    # ------------------------------------------------------------------
    # Event mapping
    # ------------------------------------------------------------------

    def _on_virtual_event(self, event_type: str, obj: KubeObject) -> None:
        self.enqueue(ObjectKey.of(obj))

    def _on_host_event(self, event_type: str, obj: KubeObject) -> None:
        key = self._ctx.names.virtual_key(obj)
        if key is not None:
            self.enqueue(key)

    def enqueue(self, key: ObjectKey) -> bool:
        try:
            self.queue.add(key)
        except QueueFullError as exc:
            self._log.warning("queue full, dropping event", key=str(key), error=str(exc))
            return False
        return True

    # ------------------------------------------------------------------
    # Sweep support
    # ------------------------------------------------------------------

    def virtual_keys(self) -> list[ObjectKey]:
        return self.virtual_cache.keys()

    def orphaned_keys(self) -> list[ObjectKey]:
        """Virtual keys of host objects whose virtual counterpart is missing."""
        orphans = []
        for host in self.host_cache.list():
            key = self._ctx.names.virtual_key(host)
            if key is not None and self.virtual_cache.get(key) is None:
                orphans.append(key)
        return orphans

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start both caches, pass the sync barrier, then start the workers."""
        self.virtual_cache.start()
        self.host_cache.start()
        timeout = float(self._config.cache_sync_timeout)
        for cache in (self.virtual_cache, self.host_cache):
            if not await cache.wait_for_sync(timeout):
                raise CacheSyncTimeoutError(f"{cache.side} cache for {self.kind} did not sync within {timeout}s")
            self._ctx.attach_cache(cache)
        await self.queue.start()
        self._log.info(
            "controller started",
            virtual_objects=len(self.virtual_cache),
            host_objects=len(self.host_cache),
        )

    async def stop(self) -> None:
        await self.queue.stop()
        await self.virtual_cache.stop()
        await self.host_cache.stop()

    def status(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "queue_depth": len(self.queue),
            "processing": self.queue.processing,
            "caches": {
                VIRTUAL: {"readiness": self.virtual_cache.readiness().value, "objects": len(self.virtual_cache)},
                HOST: {"readiness": self.host_cache.readiness().value, "objects": len(self.host_cache)},
            },
        }
