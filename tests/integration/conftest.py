"""Shared fixtures for vcsync integration tests.

Provides an in-memory ClusterClient (FakeCluster) that behaves like an API
server closely enough for the engine: resourceVersions and UIDs are
assigned on every write, merge patches honour resourceVersion
preconditions, deletes honour finalizers and UID preconditions, and watches
stream every change. Two FakeClusters (virtual and host) plus a SyncContext
let the integration tests exercise full reconcile pipelines without a real
Kubernetes cluster.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from vcsync.clients.base import ClusterClient, ListResult, WatchEvent
from vcsync.clients.errors import AlreadyExistsError, ApiError, ConflictError, NotFoundError
from vcsync.controller.events import EventRecorder
from vcsync.models.config import TranslateConfig
from vcsync.models.objects import (
    GroupVersionKind,
    KubeObject,
    labels_of,
    metadata,
    name_of,
    namespace_of,
)
from vcsync.sync.context import SyncContext
from vcsync.sync.descriptor import KindDescriptor
from vcsync.sync.engine import SyncEngine
from vcsync.sync.snapshots import SnapshotCache

WRITE_OPS = frozenset({"create", "update", "patch", "patch_status", "delete"})

_TIMESTAMP = "2026-01-01T00:00:00Z"


# ---------------------------------------------------------------------------
# Merge patch / selector helpers
# ---------------------------------------------------------------------------


def apply_merge_patch(target: Any, patch: Any) -> Any:
    """RFC 7386 application of *patch* onto *target*."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = apply_merge_patch(result.get(key), value)
    return result


def matches_selector(obj: KubeObject, selector: str | None) -> bool:
    """Equality (``k=v``) and existence (``k``) requirements, comma separated."""
    if not selector:
        return True
    labels = labels_of(obj)
    for requirement in selector.split(","):
        key, sep, value = requirement.partition("=")
        if sep:
            if labels.get(key) != value:
                return False
        elif key not in labels:
            return False
    return True


# ---------------------------------------------------------------------------
# FakeCluster
# ---------------------------------------------------------------------------


class FakeCluster(ClusterClient):
    """In-memory API server for one cluster side."""

    def __init__(self, side: str) -> None:
        self.side = side
        self._objects: dict[tuple[GroupVersionKind, str, str], KubeObject] = {}
        self._rv = 0
        self._uid = 0
        self._cluster_ip = 0
        self._watchers: list[tuple[GroupVersionKind, str | None, str | None, asyncio.Queue]] = []
        self.calls: list[tuple[str, str, str]] = []
        self.deletes: list[dict[str, Any]] = []
        self.errors: dict[tuple[str, str], ApiError] = {}
        self.watch_errors: list[ApiError] = []
        self.list_calls = 0

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def inject(self, op: str, kind: str, error: ApiError) -> None:
        """Make every *op* on *kind* fail with *error* until cleared."""
        self.errors[(op, kind)] = error

    def clear_errors(self) -> None:
        self.errors.clear()

    def writes(self, kind: str | None = None) -> list[tuple[str, str, str]]:
        return [call for call in self.calls if call[0] in WRITE_OPS and (kind is None or call[1] == kind)]

    def reset_calls(self) -> None:
        self.calls.clear()
        self.deletes.clear()

    def seed(self, gvk: GroupVersionKind, obj: KubeObject) -> KubeObject:
        """Store *obj* as if created out-of-band; no call is recorded."""
        stored = self._store_new(gvk, obj)
        return copy.deepcopy(stored)

    def peek(self, gvk: GroupVersionKind, namespace: str, name: str) -> KubeObject | None:
        obj = self._objects.get((gvk, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def edit(self, gvk: GroupVersionKind, namespace: str, name: str, fn: Callable[[KubeObject], None]) -> KubeObject:
        """Mutate a stored object out-of-band (another controller, kubelet, a user)."""
        obj = self._objects[(gvk, namespace, name)]
        fn(obj)
        self._bump(obj)
        self._emit(gvk, "MODIFIED", obj)
        return copy.deepcopy(obj)

    def remove(self, gvk: GroupVersionKind, namespace: str, name: str) -> None:
        """Drop an object immediately, bypassing finalizers."""
        obj = self._objects.pop((gvk, namespace, name))
        self._emit(gvk, "DELETED", obj)

    def objects(self, gvk: GroupVersionKind, namespace: str | None = None) -> list[KubeObject]:
        return [
            copy.deepcopy(obj)
            for (kind, ns, _), obj in self._objects.items()
            if kind == gvk and (namespace is None or ns == namespace)
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(self, op: str, gvk: GroupVersionKind, namespace: str, name: str) -> None:
        self.calls.append((op, gvk.kind, f"{namespace}/{name}"))
        error = self.errors.get((op, gvk.kind))
        if error is not None:
            raise error

    def _bump(self, obj: KubeObject) -> None:
        self._rv += 1
        metadata(obj)["resourceVersion"] = str(self._rv)

    def _store_new(self, gvk: GroupVersionKind, obj: KubeObject) -> KubeObject:
        stored = copy.deepcopy(obj)
        stored.setdefault("apiVersion", gvk.api_version)
        stored.setdefault("kind", gvk.kind)
        meta = metadata(stored)
        self._uid += 1
        meta["uid"] = f"{self.side}-uid-{self._uid}"
        meta["creationTimestamp"] = _TIMESTAMP
        if gvk.kind == "Service":
            self._cluster_ip += 1
            stored.setdefault("spec", {}).setdefault("clusterIP", f"10.96.0.{self._cluster_ip}")
        self._bump(stored)
        self._objects[(gvk, namespace_of(stored), name_of(stored))] = stored
        self._emit(gvk, "ADDED", stored)
        return stored

    def _lookup(self, gvk: GroupVersionKind, namespace: str, name: str) -> KubeObject:
        obj = self._objects.get((gvk, namespace, name))
        if obj is None:
            raise NotFoundError(404, "NotFound", f'{gvk.kind.lower()}s "{name}" not found')
        return obj

    def _check_rv(self, current: KubeObject, patch: dict[str, Any]) -> None:
        expected = (patch.get("metadata") or {}).get("resourceVersion")
        if expected is not None and expected != metadata(current).get("resourceVersion"):
            raise ConflictError(409, "Conflict", "the object has been modified; please apply your changes")

    def _finish_write(self, gvk: GroupVersionKind, obj: KubeObject) -> KubeObject:
        meta = metadata(obj)
        if meta.get("deletionTimestamp") and not meta.get("finalizers"):
            del self._objects[(gvk, namespace_of(obj), name_of(obj))]
            self._emit(gvk, "DELETED", obj)
        else:
            self._emit(gvk, "MODIFIED", obj)
        return copy.deepcopy(obj)

    def _emit(self, gvk: GroupVersionKind, event_type: str, obj: KubeObject) -> None:
        for kind, namespace, selector, queue in self._watchers:
            if kind != gvk:
                continue
            if namespace is not None and namespace_of(obj) != namespace:
                continue
            if not matches_selector(obj, selector):
                continue
            queue.put_nowait(WatchEvent(type=event_type, object=copy.deepcopy(obj)))

    # ------------------------------------------------------------------
    # ClusterClient
    # ------------------------------------------------------------------

    async def get(self, gvk: GroupVersionKind, namespace: str, name: str) -> KubeObject:
        self.calls.append(("get", gvk.kind, f"{namespace}/{name}"))
        return copy.deepcopy(self._lookup(gvk, namespace, name))

    async def list(
        self,
        gvk: GroupVersionKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> ListResult:
        self.list_calls += 1
        items = [
            copy.deepcopy(obj)
            for (kind, ns, _), obj in self._objects.items()
            if kind == gvk and (namespace is None or ns == namespace) and matches_selector(obj, label_selector)
        ]
        return ListResult(items=items, resource_version=str(self._rv))

    async def watch(  # type: ignore[override]
        self,
        gvk: GroupVersionKind,
        namespace: str | None = None,
        label_selector: str | None = None,
        resource_version: str | None = None,
    ) -> AsyncIterator[WatchEvent]:
        if self.watch_errors:
            raise self.watch_errors.pop(0)
        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
        entry = (gvk, namespace, label_selector, queue)
        self._watchers.append(entry)
        try:
            while True:
                yield await queue.get()
        finally:
            self._watchers.remove(entry)

    async def create(self, gvk: GroupVersionKind, obj: KubeObject) -> KubeObject:
        namespace = namespace_of(obj)
        name = name_of(obj)
        self._record("create", gvk, namespace, name)
        if (gvk, namespace, name) in self._objects:
            raise AlreadyExistsError(409, "AlreadyExists", f'{gvk.kind.lower()}s "{name}" already exists')
        return copy.deepcopy(self._store_new(gvk, obj))

    async def update(self, gvk: GroupVersionKind, obj: KubeObject) -> KubeObject:
        namespace = namespace_of(obj)
        name = name_of(obj)
        self._record("update", gvk, namespace, name)
        current = self._lookup(gvk, namespace, name)
        self._check_rv(current, obj)
        replacement = copy.deepcopy(obj)
        for field_name in ("uid", "creationTimestamp", "deletionTimestamp", "deletionGracePeriodSeconds"):
            if field_name in metadata(current):
                metadata(replacement)[field_name] = metadata(current)[field_name]
        replacement["status"] = copy.deepcopy(current.get("status"))
        if replacement["status"] is None:
            replacement.pop("status")
        self._bump(replacement)
        self._objects[(gvk, namespace, name)] = replacement
        return self._finish_write(gvk, replacement)

    async def patch(
        self,
        gvk: GroupVersionKind,
        namespace: str,
        name: str,
        patch: dict[str, Any],
    ) -> KubeObject:
        self._record("patch", gvk, namespace, name)
        current = self._lookup(gvk, namespace, name)
        self._check_rv(current, patch)
        body = copy.deepcopy(patch)
        body.pop("status", None)
        (body.get("metadata") or {}).pop("resourceVersion", None)
        patched = apply_merge_patch(current, body)
        self._bump(patched)
        self._objects[(gvk, namespace, name)] = patched
        return self._finish_write(gvk, patched)

    async def patch_status(
        self,
        gvk: GroupVersionKind,
        namespace: str,
        name: str,
        patch: dict[str, Any],
    ) -> KubeObject:
        self._record("patch_status", gvk, namespace, name)
        current = self._lookup(gvk, namespace, name)
        self._check_rv(current, patch)
        patched = copy.deepcopy(current)
        if "status" in patch:
            status = apply_merge_patch(current.get("status"), patch["status"]) if patch["status"] is not None else None
            if status is None:
                patched.pop("status", None)
            else:
                patched["status"] = status
        self._bump(patched)
        self._objects[(gvk, namespace, name)] = patched
        return self._finish_write(gvk, patched)

    async def delete(
        self,
        gvk: GroupVersionKind,
        namespace: str,
        name: str,
        grace_period_seconds: int | None = None,
        precondition_uid: str | None = None,
    ) -> None:
        self._record("delete", gvk, namespace, name)
        self.deletes.append(
            {
                "kind": gvk.kind,
                "namespace": namespace,
                "name": name,
                "grace_period_seconds": grace_period_seconds,
                "precondition_uid": precondition_uid,
            }
        )
        current = self._lookup(gvk, namespace, name)
        meta = metadata(current)
        if precondition_uid is not None and precondition_uid != meta.get("uid"):
            raise ConflictError(409, "Conflict", "Precondition failed: UID in precondition does not match")
        if not meta.get("finalizers"):
            del self._objects[(gvk, namespace, name)]
            self._emit(gvk, "DELETED", current)
            return
        if not meta.get("deletionTimestamp"):
            meta["deletionTimestamp"] = _TIMESTAMP
            if grace_period_seconds is not None:
                meta["deletionGracePeriodSeconds"] = grace_period_seconds
            self._bump(current)
            self._emit(gvk, "MODIFIED", current)


# ---------------------------------------------------------------------------
# Object factory helpers
# ---------------------------------------------------------------------------


def make_pod(
    name: str = "web",
    namespace: str = "default",
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    finalizers: list[str] | None = None,
    spec: dict[str, Any] | None = None,
) -> KubeObject:
    """Create a minimal virtual Pod manifest."""
    meta: dict[str, Any] = {"name": name, "namespace": namespace}
    if labels:
        meta["labels"] = dict(labels)
    if annotations:
        meta["annotations"] = dict(annotations)
    if finalizers:
        meta["finalizers"] = list(finalizers)
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": meta,
        "spec": spec
        or {
            "serviceAccountName": "default",
            "containers": [{"name": "app", "image": "nginx:1.25"}],
        },
    }


def make_configmap(
    name: str = "settings",
    namespace: str = "default",
    data: dict[str, str] | None = None,
    labels: dict[str, str] | None = None,
) -> KubeObject:
    """Create a minimal virtual ConfigMap manifest."""
    meta: dict[str, Any] = {"name": name, "namespace": namespace}
    if labels:
        meta["labels"] = dict(labels)
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": meta,
        "data": data if data is not None else {"color": "blue"},
    }


async def eventually(predicate: Callable[[], bool], timeout: float = 5.0, poll: float = 0.01) -> bool:
    """Poll *predicate* until it holds or *timeout* elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(poll)
    return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def translate_config() -> TranslateConfig:
    return TranslateConfig(name="vc", current_namespace="vc-ns", target_namespace="vc-ns")


@pytest.fixture()
def virtual_cluster() -> FakeCluster:
    return FakeCluster("virtual")


@pytest.fixture()
def host_cluster() -> FakeCluster:
    return FakeCluster("host")


@pytest.fixture()
def ctx(translate_config: TranslateConfig, virtual_cluster: FakeCluster, host_cluster: FakeCluster) -> SyncContext:
    return SyncContext.build(
        translate_config,
        virtual_cluster,
        host_cluster,
        events=EventRecorder(virtual_cluster),
    )


@pytest.fixture()
def make_engine(ctx: SyncContext) -> Callable[..., SyncEngine]:
    """Factory: ``make_engine(descriptor)`` with a shared SnapshotCache."""
    snapshots = SnapshotCache()

    def _factory(descriptor: KindDescriptor, **kwargs: Any) -> SyncEngine:
        return SyncEngine(descriptor, ctx, snapshots=snapshots, **kwargs)

    return _factory

