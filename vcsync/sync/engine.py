"""The bidirectional sync state machine.

One SyncEngine exists per kind. ``reconcile(key)`` reads the virtual object
at *key* and its host counterpart, classifies the pair, and drives it one
step towards convergence:

    S0  neither exists          -> nothing to do
    S1  virtual only            -> create the host object, or finish a
                                   deletion whose host side is already gone
    S2  managed host only       -> materialize the virtual object (kinds with
                                   backward creation) or remove the orphan
    S3  both exist              -> propagate deletions, else diff and patch

A host object that exists but fails the ownership check ends the reconcile:
the engine never touches objects it did not create, and never treats a
foreign host object as a deleted one. Objects labelled or annotated
``controlled-by`` another syncer are skipped on either side.

The engine does not schedule anything itself. It returns DONE or REQUEUE and
leaves retries and back-off to the work queue.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from vcsync.clients.errors import (
    AlreadyExistsError,
    ApiError,
    ConflictError,
    NotFoundError,
    is_rejection,
)
from vcsync.models.cache import CacheReadiness
from vcsync.models.objects import (
    GroupVersionKind,
    KubeObject,
    ObjectKey,
    annotations_of,
    deep_copy,
    deletion_grace_period_of,
    deletion_timestamp_of,
    finalizers_of,
    is_newer_resource_version,
    labels_of,
    name_of,
    namespace_of,
    resource_version_of,
    set_annotations,
    set_field,
    uid_of,
)
from vcsync.observability.logging import get_logger
from vcsync.observability.metrics import reconcile_duration_seconds, reconcile_total, writes_total
from vcsync.sync.context import HOST, VIRTUAL, SyncContext, SyncEvent
from vcsync.sync.descriptor import KindDescriptor
from vcsync.sync.generic import diff, to_host, to_virtual
from vcsync.sync.mutation import MutationHook, MutationIdentityError
from vcsync.sync.patcher import Patcher
from vcsync.sync.snapshots import Snapshot, SnapshotCache
from vcsync.translate.constants import (
    CONTROLLER_LABEL,
    KIND_ANNOTATION,
    MARKER_LABEL,
    NAME_ANNOTATION,
    UID_ANNOTATION,
)

NAMESPACE_GVK = GroupVersionKind("", "v1", "Namespace")

# Delay before re-reading a cache that is behind our own last write.
_STALE_REQUEUE_SECONDS = 1.0


@dataclass(frozen=True)
class ReconcileResult:
    requeue: bool = False
    requeue_after: float | None = None


DONE = ReconcileResult()
REQUEUE = ReconcileResult(requeue=True)


class SyncEngine:
    """Generic reconcile loop for one kind descriptor."""

    def __init__(
        self,
        descriptor: KindDescriptor,
        ctx: SyncContext,
        snapshots: SnapshotCache | None = None,
        mutation_hook: MutationHook | None = None,
    ) -> None:
        self._descriptor = descriptor
        self._ctx = ctx
        self._snapshots = snapshots if snapshots is not None else SnapshotCache()
        self._mutation_hook = mutation_hook
        self._patcher = Patcher(ctx)
        self._known_namespaces: set[str] = set()
        self._log = get_logger("sync.engine").bind(kind=descriptor.kind)

    @property
    def descriptor(self) -> KindDescriptor:
        return self._descriptor

    @property
    def gvk(self) -> GroupVersionKind:
        return self._descriptor.gvk

    @property
    def snapshots(self) -> SnapshotCache:
        return self._snapshots

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def reconcile(self, key: ObjectKey) -> ReconcileResult:
        """Drive the pair at *key* one step; errors other than races propagate."""
        log = self._log.bind(key=str(key))
        start = time.monotonic()
        outcome = "error"
        try:
            result = await self._reconcile(key, log)
            outcome = "requeue" if result.requeue else "done"
            return result
        except ConflictError as exc:
            # stale resourceVersion or a create race; the next read sees the winner
            log.debug("write conflict, requeueing", error=str(exc))
            outcome = "requeue"
            return REQUEUE
        except NotFoundError as exc:
            log.debug("object disappeared during write, requeueing", error=str(exc))
            outcome = "requeue"
            return REQUEUE
        finally:
            reconcile_total.labels(kind=self.gvk.kind, result=outcome).inc()
            reconcile_duration_seconds.labels(kind=self.gvk.kind).observe(time.monotonic() - start)

    async def _reconcile(self, key: ObjectKey, log: Any) -> ReconcileResult:
        descriptor = self._descriptor
        host_key = self._ctx.names.host_key(key, descriptor.namespaced)

        virtual = await self._read(VIRTUAL, key)
        if virtual is not None and (not descriptor.syncs(virtual) or self._controlled_elsewhere(virtual)):
            return DONE
        host = await self._read(HOST, host_key)
        if host is not None:
            if not self._is_managed(host):
                return await self._foreign_host(virtual, host_key, log)
            if self._controlled_elsewhere(host):
                log.debug("host object controlled by another syncer, ignoring", host=str(host_key))
                return DONE

        snapshot = self._snapshots.get(self.gvk, key)
        if snapshot is not None and self._is_stale(snapshot, virtual, host):
            log.debug("cache behind last sync, requeueing")
            return ReconcileResult(requeue=True, requeue_after=_STALE_REQUEUE_SECONDS)

        if virtual is None and host is None:
            self._snapshots.remove(self.gvk, key)
            return DONE
        if host is None:
            assert virtual is not None
            return await self._virtual_only(key, host_key, virtual, log)
        if virtual is None:
            return await self._host_only(key, host, log)
        return await self._both(key, virtual, host, snapshot, log)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read(self, side: str, key: ObjectKey) -> KubeObject | None:
        cache = self._ctx.cache(side, self.gvk)
        if cache is not None and cache.readiness() != CacheReadiness.WARMING:
            return cache.get(key)
        return await self._get(side, key)

    async def _get(self, side: str, key: ObjectKey) -> KubeObject | None:
        try:
            return await self._ctx.client(side).get(self.gvk, key.namespace, key.name)
        except NotFoundError:
            return None

    def _is_managed(self, host: KubeObject) -> bool:
        predicate = self._descriptor.is_managed_fn
        if predicate is not None:
            return predicate(host, self.gvk, self._descriptor.namespaced)
        return self._ctx.ownership.is_managed(host, self.gvk, self._descriptor.namespaced)

    def _controlled_elsewhere(self, obj: KubeObject) -> bool:
        if labels_of(obj).get(CONTROLLER_LABEL):
            return True
        owner = annotations_of(obj).get(CONTROLLER_LABEL, "")
        return bool(owner) and owner != self._descriptor.name

    async def _foreign_host(self, virtual: KubeObject | None, host_key: ObjectKey, log: Any) -> ReconcileResult:
        """A host object occupies our name but was not created by this instance."""
        log.debug("host object is not managed, ignoring", host=str(host_key))
        if virtual is not None and deletion_timestamp_of(virtual) is None and self._descriptor.to_host:
            await self._record_warning(
                virtual,
                HOST,
                f'{self.gvk.kind.lower()} "{host_key.name}" already exists and is not managed by this virtual cluster',
            )
        return DONE

    @staticmethod
    def _is_stale(snapshot: Snapshot, virtual: KubeObject | None, host: KubeObject | None) -> bool:
        for old, new in ((snapshot.virtual, virtual), (snapshot.host, host)):
            if old is None or new is None or uid_of(old) != uid_of(new):
                continue
            if is_newer_resource_version(old, new):
                return True
        return False

    # ------------------------------------------------------------------
    # S1: virtual only
    # ------------------------------------------------------------------

    async def _virtual_only(
        self,
        key: ObjectKey,
        host_key: ObjectKey,
        virtual: KubeObject,
        log: Any,
    ) -> ReconcileResult:
        descriptor = self._descriptor
        host_existed = self._snapshots.host_existed(self.gvk, key) or (
            descriptor.host_existed is not None and descriptor.host_existed(virtual)
        )

        if deletion_timestamp_of(virtual) is not None or host_existed:
            if self._ctx.cache(HOST, self.gvk) is not None:
                live = await self._get(HOST, host_key)
                if live is not None and not self._is_managed(live):
                    return await self._foreign_host(virtual, host_key, log)
                if live is not None:
                    # the host cache has not caught up with our create yet
                    return ReconcileResult(requeue=True, requeue_after=_STALE_REQUEUE_SECONDS)
            # nothing on the host holds this object back any more
            log.info(
                "host object gone, deleting virtual object",
                virtual_deleting=deletion_timestamp_of(virtual) is not None,
            )
            await self._delete_virtual(virtual, grace_period=0, strip_finalizers=True)
            self._snapshots.remove(self.gvk, key)
            return DONE

        if not descriptor.to_host:
            return DONE

        await self._ensure_host_namespace(host_key.namespace, key.namespace)
        desired = to_host(self._ctx, descriptor, virtual)
        try:
            desired = await self._mutate(desired, HOST, "create")
            created = await self._ctx.host_client.create(self.gvk, desired)
        except AlreadyExistsError as exc:
            existing = await self._get(HOST, host_key)
            if existing is not None and not self._is_managed(existing):
                await self._warn(virtual, exc, HOST)
                return DONE
            log.debug("host object created concurrently, requeueing")
            return REQUEUE
        except MutationIdentityError as exc:
            await self._warn(virtual, exc, HOST)
            return DONE
        except ApiError as exc:
            if not is_rejection(exc):
                raise
            await self._warn(virtual, exc, HOST)
            return DONE

        writes_total.labels(side=HOST, kind=self.gvk.kind, op="create").inc()
        self._snapshots.put(self.gvk, key, virtual, created)
        log.info("host object created", host=str(host_key))
        return DONE

    # ------------------------------------------------------------------
    # S2: host only
    # ------------------------------------------------------------------

    async def _host_only(self, key: ObjectKey, host: KubeObject, log: Any) -> ReconcileResult:
        if deletion_timestamp_of(host) is not None:
            return DONE

        if self._ctx.cache(VIRTUAL, self.gvk) is not None and await self._get(VIRTUAL, key) is not None:
            # the virtual cache has not caught up with a create yet
            return ReconcileResult(requeue=True, requeue_after=_STALE_REQUEUE_SECONDS)

        descriptor = self._descriptor
        if not descriptor.from_host:
            log.info("virtual object gone, deleting host object", host=str(ObjectKey.of(host)))
            await self._delete_host(host, grace_period=None)
            self._snapshots.remove(self.gvk, key)
            return DONE

        desired = to_virtual(self._ctx, descriptor, host)
        try:
            desired = await self._mutate(desired, VIRTUAL, "create")
        except MutationIdentityError as exc:
            log.warning("mutation rejected", error=str(exc))
            return DONE
        created = await self._ctx.virtual_client.create(self.gvk, desired)
        writes_total.labels(side=VIRTUAL, kind=self.gvk.kind, op="create").inc()

        # point the host identity at the new virtual object
        host_after = deep_copy(host)
        assert host_after is not None
        annotations = annotations_of(host_after)
        annotations[UID_ANNOTATION] = uid_of(created)
        set_annotations(host_after, annotations)
        await self._patcher.apply(HOST, self.gvk, host, host_after, descriptor.has_status)

        self._snapshots.put(self.gvk, key, created, host)
        log.info("virtual object created from host")
        return DONE

    # ------------------------------------------------------------------
    # S3: both exist
    # ------------------------------------------------------------------

    async def _both(
        self,
        key: ObjectKey,
        virtual: KubeObject,
        host: KubeObject,
        snapshot: Snapshot | None,
        log: Any,
    ) -> ReconcileResult:
        descriptor = self._descriptor

        host_annotations = annotations_of(host)
        host_uid = host_annotations.get(UID_ANNOTATION, "")
        host_kind = host_annotations.get(KIND_ANNOTATION, "")
        if host_uid and uid_of(virtual) and host_uid != uid_of(virtual) and host_kind in ("", str(self.gvk)):
            if deletion_timestamp_of(host) is not None:
                return ReconcileResult(requeue=True, requeue_after=_STALE_REQUEUE_SECONDS)
            log.info(
                "host object belongs to a previous virtual object, deleting",
                host_uid=host_uid,
                virtual_uid=uid_of(virtual),
            )
            await self._delete_host(host, grace_period=None)
            self._snapshots.remove(self.gvk, key)
            return REQUEUE

        if deletion_timestamp_of(virtual) is not None:
            if deletion_timestamp_of(host) is None:
                grace = deletion_grace_period_of(virtual)
                if grace is None:
                    grace = descriptor.default_grace_period
                log.info("virtual object deleting, deleting host object", grace_period=grace)
                await self._delete_host(host, grace_period=grace)
            return DONE

        if deletion_timestamp_of(host) is not None:
            if descriptor.back_sync.status and descriptor.has_status:
                virtual_after = deep_copy(virtual)
                assert virtual_after is not None
                set_field(virtual_after, ("status",), host.get("status"))
                await self._patcher.apply(VIRTUAL, self.gvk, virtual, virtual_after, descriptor.has_status)
            grace = deletion_grace_period_of(host)
            log.info("host object deleting, deleting virtual object", grace_period=grace)
            await self._delete_virtual(virtual, grace_period=grace, strip_finalizers=False)
            return DONE

        event = SyncEvent.create(
            self._ctx,
            self.gvk,
            virtual,
            host,
            virtual_old=snapshot.virtual if snapshot else None,
            host_old=snapshot.host if snapshot else None,
        )
        diff(event, descriptor)
        try:
            if event.host_after is not None and event.host_after != host:
                event.host_after = await self._mutate(event.host_after, HOST, "update")
            writes = await self._patcher.sync(event, descriptor.has_status)
        except MutationIdentityError as exc:
            await self._warn(virtual, exc, HOST)
            return DONE
        except ApiError as exc:
            if not is_rejection(exc):
                raise
            await self._warn(virtual, exc, self._patcher.last_side)
            return DONE

        self._snapshots.put(self.gvk, key, virtual, host)
        if descriptor.on_synced is not None:
            await descriptor.on_synced(event)
        if writes:
            log.info("synced", writes=writes)
        return DONE

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _delete_host(self, host: KubeObject, grace_period: int | None) -> None:
        try:
            await self._ctx.host_client.delete(
                self.gvk,
                namespace_of(host),
                name_of(host),
                grace_period_seconds=grace_period,
                precondition_uid=uid_of(host) or None,
            )
        except NotFoundError:
            return
        writes_total.labels(side=HOST, kind=self.gvk.kind, op="delete").inc()

    async def _delete_virtual(self, virtual: KubeObject, grace_period: int | None, strip_finalizers: bool) -> None:
        client = self._ctx.virtual_client
        namespace = namespace_of(virtual)
        name = name_of(virtual)
        try:
            if strip_finalizers and finalizers_of(virtual):
                meta: dict[str, Any] = {"finalizers": None}
                if resource_version_of(virtual):
                    meta["resourceVersion"] = resource_version_of(virtual)
                await client.patch(self.gvk, namespace, name, {"metadata": meta})
                writes_total.labels(side=VIRTUAL, kind=self.gvk.kind, op="patch").inc()
            await client.delete(
                self.gvk,
                namespace,
                name,
                grace_period_seconds=grace_period,
                precondition_uid=uid_of(virtual) or None,
            )
        except NotFoundError:
            return
        writes_total.labels(side=VIRTUAL, kind=self.gvk.kind, op="delete").inc()

    async def _ensure_host_namespace(self, host_namespace: str, virtual_namespace: str) -> None:
        """Multi-namespace mode creates one host namespace per virtual namespace."""
        if not self._ctx.config.multi_namespace or not host_namespace:
            return
        if host_namespace in self._known_namespaces:
            return
        client = self._ctx.host_client
        try:
            await client.get(NAMESPACE_GVK, "", host_namespace)
        except NotFoundError:
            body = {
                "apiVersion": "v1",
                "kind": "Namespace",
                "metadata": {
                    "name": host_namespace,
                    "labels": {MARKER_LABEL: self._ctx.config.name},
                    "annotations": {NAME_ANNOTATION: virtual_namespace},
                },
            }
            try:
                await client.create(NAMESPACE_GVK, body)
                writes_total.labels(side=HOST, kind=NAMESPACE_GVK.kind, op="create").inc()
                self._log.info("host namespace created", namespace=host_namespace)
            except AlreadyExistsError:
                pass
        self._known_namespaces.add(host_namespace)

    async def _mutate(self, obj: KubeObject, side: str, operation: str) -> KubeObject:
        if self._mutation_hook is None:
            return obj
        return await self._mutation_hook.mutate(obj, side, operation)

    async def _warn(self, virtual: KubeObject, exc: Exception, side: str) -> None:
        message = exc.message if isinstance(exc, ApiError) and exc.message else str(exc)
        await self._record_warning(virtual, side, message, status=getattr(exc, "status", None))

    async def _record_warning(self, virtual: KubeObject, side: str, message: str, status: int | None = None) -> None:
        self._log.warning("sync rejected", key=str(ObjectKey.of(virtual)), side=side, error=message, status=status)
        if self._ctx.events is not None:
            await self._ctx.events.warning(virtual, "SyncError", f"Error syncing to {side} cluster: {message}")
