"""Informer-style read cache for one (side, GVK) pair.

The cache is filled by an initial List and kept current by a Watch. Reads
are served from memory; writes never go through the cache. Subscribers
receive every change as ``(event_type, object)`` so the controller can map it
to a reconcile key.

Readiness model:
    WARMING  -> no successful List yet; ``wait_for_sync`` blocks.
    READY    -> listed, watch healthy.
    DEGRADED -> listed, but more than ``_RECONNECT_FAILURE_THRESHOLD``
                consecutive watch reconnects have failed. Reads still work
                but may be stale; the next successful watch restores READY.

A watch that fails with 410 Gone (resourceVersion too old) triggers a full
relist; objects missing from the relist are reported as DELETED.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from vcsync.clients.base import ClusterClient
from vcsync.clients.errors import ApiError
from vcsync.models.cache import CacheReadiness
from vcsync.models.objects import GroupVersionKind, KubeObject, ObjectKey, resource_version_of
from vcsync.observability.logging import get_logger

EventHandler = Callable[[str, KubeObject], None]

_RECONNECT_FAILURE_THRESHOLD = 3
_BACKOFF_INITIAL_SECONDS = 1.0
_BACKOFF_MAX_SECONDS = 30.0


class ObjectCache:
    """In-memory mirror of one kind on one cluster."""

    def __init__(
        self,
        client: ClusterClient,
        gvk: GroupVersionKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> None:
        self._client = client
        self._gvk = gvk
        self._namespace = namespace
        self._label_selector = label_selector
        self._store: dict[ObjectKey, KubeObject] = {}
        self._handlers: list[EventHandler] = []
        self._resource_version = ""
        self._synced = asyncio.Event()
        self._reconnect_failures = 0
        self._task: asyncio.Task[None] | None = None
        self._log = get_logger("cache").bind(side=client.side, kind=gvk.kind)

    @property
    def gvk(self) -> GroupVersionKind:
        return self._gvk

    @property
    def side(self) -> str:
        return self._client.side

    def __len__(self) -> int:
        return len(self._store)

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def add_handler(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def _notify(self, event_type: str, obj: KubeObject) -> None:
        for handler in self._handlers:
            try:
                handler(event_type, obj)
            except Exception as exc:
                self._log.error("cache event handler failed", event_type=event_type, error=str(exc))

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def update(self, obj: KubeObject) -> None:
        self._store[ObjectKey.of(obj)] = obj

    def remove(self, key: ObjectKey) -> KubeObject | None:
        return self._store.pop(key, None)

    def get(self, key: ObjectKey) -> KubeObject | None:
        """Return the cached object. Callers must treat it as read-only."""
        return self._store.get(key)

    def list(self, namespace: str | None = None) -> list[KubeObject]:
        if namespace is None:
            return list(self._store.values())
        return [obj for key, obj in self._store.items() if key.namespace == namespace]

    def keys(self) -> list[ObjectKey]:
        return list(self._store)

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def readiness(self) -> CacheReadiness:
        if not self._synced.is_set():
            return CacheReadiness.WARMING
        if self._reconnect_failures > _RECONNECT_FAILURE_THRESHOLD:
            return CacheReadiness.DEGRADED
        return CacheReadiness.READY

    def notify_reconnect_failure(self) -> None:
        self._reconnect_failures += 1
        if self._reconnect_failures == _RECONNECT_FAILURE_THRESHOLD + 1:
            self._log.warning("cache degraded", reconnect_failures=self._reconnect_failures)

    def reset_reconnect_failures(self) -> None:
        if self._reconnect_failures > _RECONNECT_FAILURE_THRESHOLD:
            self._log.info("cache recovered")
        self._reconnect_failures = 0

    async def wait_for_sync(self, timeout: float) -> bool:
        """Block until the first List completed. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._synced.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # List / Watch
    # ------------------------------------------------------------------

    async def populate(self) -> None:
        """List the kind and replace the store, emitting the differences."""
        result = await self._client.list(self._gvk, namespace=self._namespace, label_selector=self._label_selector)
        previous = self._store
        self._store = {}
        for obj in result.items:
            key = ObjectKey.of(obj)
            self._store[key] = obj
            old = previous.pop(key, None)
            if old is None:
                self._notify("ADDED", obj)
            elif resource_version_of(old) != resource_version_of(obj):
                self._notify("MODIFIED", obj)
        for obj in previous.values():
            self._notify("DELETED", obj)

        self._resource_version = result.resource_version
        first = not self._synced.is_set()
        self._synced.set()
        self._log.info("cache listed", objects=len(self._store), initial=first)

    def _apply(self, event_type: str, obj: KubeObject) -> None:
        if event_type == "BOOKMARK":
            self._resource_version = resource_version_of(obj) or self._resource_version
            return
        rv = resource_version_of(obj)
        if rv:
            self._resource_version = rv
        if event_type == "DELETED":
            self.remove(ObjectKey.of(obj))
        else:
            self.update(obj)
        self._notify(event_type, obj)

    async def run(self) -> None:
        """List, then watch forever; reconnect with exponential back-off."""
        backoff = _BACKOFF_INITIAL_SECONDS
        needs_list = True
        while True:
            try:
                if needs_list:
                    await self.populate()
                    needs_list = False
                received = False
                async for event in self._client.watch(
                    self._gvk,
                    namespace=self._namespace,
                    label_selector=self._label_selector,
                    resource_version=self._resource_version or None,
                ):
                    received = True
                    if backoff != _BACKOFF_INITIAL_SECONDS or self._reconnect_failures:
                        backoff = _BACKOFF_INITIAL_SECONDS
                        self.reset_reconnect_failures()
                    self._apply(event.type, event.object)
                # server closed the watch; resume from the last resourceVersion
                if received:
                    continue
                self._log.debug("watch closed without events", retry_in=backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, _BACKOFF_MAX_SECONDS)
                continue
            except asyncio.CancelledError:
                raise
            except ApiError as exc:
                if exc.status == 410:
                    self._log.info("watch expired, relisting")
                    needs_list = True
                    continue
                self._log.warning("watch failed", status=exc.status, error=str(exc), retry_in=backoff)
            except Exception as exc:
                self._log.warning("watch failed", error=str(exc), retry_in=backoff)
            self.notify_reconnect_failure()
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, _BACKOFF_MAX_SECONDS)

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=f"cache-{self.side}-{self._gvk.kind}")
        return self._task

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
