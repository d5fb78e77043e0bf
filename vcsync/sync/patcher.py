"""Minimal-diff writes between a before and an after object.

The Patcher never sends full objects. It computes an RFC 7386 JSON merge
patch between what was read and what the descriptor wants, splits the status
subresource off, and issues at most two writes per side. An identical
before/after pair issues no write at all, which is what makes a converged
reconcile a fixed point.

Every main patch carries ``metadata.resourceVersion`` from the read, so a
concurrent writer turns our patch into a 409 instead of silently losing its
change. The status write is locked to the resourceVersion returned by the
main write.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from vcsync.models.objects import GroupVersionKind, KubeObject, name_of, namespace_of, resource_version_of
from vcsync.observability.logging import get_logger
from vcsync.observability.metrics import writes_total

if TYPE_CHECKING:
    from vcsync.sync.context import SyncContext, SyncEvent

_log = get_logger("sync.patcher")

_MISSING = object()

# Server-owned metadata that must never appear in a computed patch.
_VOLATILE_METADATA = ("resourceVersion", "managedFields", "generation", "creationTimestamp", "uid", "selfLink")


def create_merge_patch(before: dict[str, Any], after: dict[str, Any]) -> dict[str, Any]:
    """RFC 7386 merge patch transforming *before* into *after* ({} when equal).

    Removed keys map to ``None``; nested maps recurse; lists and scalars are
    replaced wholesale.
    """
    patch: dict[str, Any] = {}
    for key in before:
        if key not in after:
            patch[key] = None
    for key, value in after.items():
        old = before.get(key, _MISSING)
        if old is not _MISSING and old == value:
            continue
        if isinstance(value, dict) and isinstance(old, dict):
            nested = create_merge_patch(old, value)
            if nested:
                patch[key] = nested
        else:
            patch[key] = copy.deepcopy(value)
    return patch


def three_way_merge(last: Any, desired: Any, live: Any) -> Any:
    """Merge *desired* into *live*, using *last* to detect removals.

    Keys present in *desired* are enforced. Keys present in *last* but gone
    from *desired* are dropped. Everything else in *live* survives, which
    keeps server-populated defaults and fields written by other controllers.
    Returns None when the value should be absent altogether.
    """
    if desired is None:
        if last is not None:
            return None
        return copy.deepcopy(live)

    if isinstance(desired, dict) and isinstance(live, dict):
        base = last if isinstance(last, dict) else {}
        merged: dict[str, Any] = {}
        for key, value in live.items():
            if key in desired or key in base:
                continue
            merged[key] = copy.deepcopy(value)
        for key, value in desired.items():
            result = three_way_merge(base.get(key), value, live.get(key))
            if result is not None:
                merged[key] = result
        return merged

    if isinstance(desired, list) and isinstance(live, list) and len(desired) == len(live):
        if isinstance(last, list) and len(last) == len(desired):
            bases: list[Any] = list(last)
        else:
            bases = [None] * len(desired)
        return [three_way_merge(b, d, v) for b, d, v in zip(bases, desired, live, strict=True)]

    return copy.deepcopy(desired)


def _strip(obj: KubeObject, keep_status: bool) -> dict[str, Any]:
    stripped = copy.deepcopy(obj)
    if not keep_status:
        stripped.pop("status", None)
    meta = stripped.get("metadata")
    if isinstance(meta, dict):
        for field_name in _VOLATILE_METADATA:
            meta.pop(field_name, None)
    return stripped


class Patcher:
    """Issues merge-patch writes for one SyncContext."""

    def __init__(self, ctx: SyncContext) -> None:
        self._ctx = ctx
        self.last_side = "host"

    async def apply(
        self,
        side: str,
        gvk: GroupVersionKind,
        before: KubeObject,
        after: KubeObject,
        has_status: bool = True,
    ) -> int:
        """Write the difference between *before* and *after* to *side*.

        Returns the number of API writes issued.
        """
        client = self._ctx.client(side)
        namespace = namespace_of(before)
        name = name_of(before)
        resource_version = resource_version_of(before)
        writes = 0

        patch = create_merge_patch(_strip(before, not has_status), _strip(after, not has_status))
        if patch:
            if resource_version:
                patch.setdefault("metadata", {})["resourceVersion"] = resource_version
            result = await client.patch(gvk, namespace, name, patch)
            writes_total.labels(side=side, kind=gvk.kind, op="patch").inc()
            writes += 1
            resource_version = resource_version_of(result) or resource_version
            _log.debug("patched", side=side, kind=gvk.kind, object=f"{namespace}/{name}", patch_keys=sorted(patch))

        if has_status:
            status_patch = create_merge_patch(
                {"status": before.get("status")} if "status" in before else {},
                {"status": after.get("status")} if "status" in after else {},
            )
            if status_patch:
                if resource_version:
                    status_patch["metadata"] = {"resourceVersion": resource_version}
                await client.patch_status(gvk, namespace, name, status_patch)
                writes_total.labels(side=side, kind=gvk.kind, op="patch_status").inc()
                writes += 1
                _log.debug("status patched", side=side, kind=gvk.kind, object=f"{namespace}/{name}")
        return writes

    async def sync(self, event: SyncEvent, has_status: bool = True) -> int:
        """Apply the virtual side, then the host side, of *event*.

        ``last_side`` names the side of the most recent write attempt, so a
        caller handling a failed sync knows which cluster rejected it.
        """
        writes = 0
        if event.virtual is not None and event.virtual_after is not None:
            self.last_side = "virtual"
            writes += await self.apply("virtual", event.gvk, event.virtual, event.virtual_after, has_status)
        if event.host is not None and event.host_after is not None:
            self.last_side = "host"
            writes += await self.apply("host", event.gvk, event.host, event.host_after, has_status)
        return writes
