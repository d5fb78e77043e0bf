"""Last-synced snapshots, one pair per virtual object.

The snapshot pair serves two purposes. It is the ``last`` input of the
three-way merge (what we wrote the previous time), and it remembers that a
host counterpart once existed, which is how a host object deleted
out-of-band is told apart from one that was simply never created.

Snapshots live in memory only. After a restart every object is treated as
first-seen; descriptors that can infer prior existence from the virtual
object itself (e.g. a Pod with a start time) provide a ``host_existed`` hook.
"""

from __future__ import annotations

from dataclasses import dataclass

from vcsync.models.objects import GroupVersionKind, KubeObject, ObjectKey, deep_copy


@dataclass(frozen=True)
class Snapshot:
    virtual: KubeObject | None
    host: KubeObject | None


class SnapshotCache:
    """Keyed by (GVK, virtual ObjectKey)."""

    def __init__(self) -> None:
        self._entries: dict[tuple[GroupVersionKind, ObjectKey], Snapshot] = {}

    def get(self, gvk: GroupVersionKind, key: ObjectKey) -> Snapshot | None:
        return self._entries.get((gvk, key))

    def put(self, gvk: GroupVersionKind, key: ObjectKey, virtual: KubeObject | None, host: KubeObject | None) -> None:
        self._entries[(gvk, key)] = Snapshot(virtual=deep_copy(virtual), host=deep_copy(host))

    def remove(self, gvk: GroupVersionKind, key: ObjectKey) -> None:
        self._entries.pop((gvk, key), None)

    def host_existed(self, gvk: GroupVersionKind, key: ObjectKey) -> bool:
        entry = self._entries.get((gvk, key))
        return entry is not None and entry.host is not None

    def __len__(self) -> int:
        return len(self._entries)
