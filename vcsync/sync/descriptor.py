"""Kind descriptors: the per-kind knobs of the sync engine.

A descriptor is plain data plus optional hook functions. The engine itself
contains no kind-specific code; everything that differs between ConfigMaps,
Secrets and Pods is expressed here.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from vcsync.models.objects import GroupVersionKind, KubeObject

if TYPE_CHECKING:
    from vcsync.sync.context import SyncContext, SyncEvent

FieldPath = tuple[str, ...]

ToHostFn = Callable[["SyncContext", "KindDescriptor", KubeObject], KubeObject]
ToVirtualFn = Callable[["SyncContext", "KindDescriptor", KubeObject], KubeObject]
DiffFn = Callable[["SyncEvent", "KindDescriptor"], None]
ManagedFn = Callable[[KubeObject, GroupVersionKind, bool], bool]
SyncedHook = Callable[["SyncEvent"], Awaitable[None]]


@dataclass(frozen=True)
class BackSyncPolicy:
    """Which host fields flow back to the virtual object.

    status                 -- copy the whole status subresource host -> virtual.
    spec_fields            -- paths copied host -> virtual verbatim (e.g. spec.nodeName).
    labels_from_host       -- host labels are authoritative; virtual labels follow them.
    annotations_from_host  -- same for annotations.

    Each field has exactly one authority, so two sides can never keep
    overwriting each other.
    """

    status: bool = False
    spec_fields: tuple[FieldPath, ...] = ()
    labels_from_host: bool = False
    annotations_from_host: bool = False


@dataclass(frozen=True)
class KindDescriptor:
    """Everything the engine needs to sync one kind."""

    gvk: GroupVersionKind
    namespaced: bool = True
    # direction of object creation
    to_host: bool = True
    from_host: bool = False
    # fields owned by the virtual side, replaced wholesale on the host
    forward_fields: tuple[FieldPath, ...] = ()
    # fields owned by the virtual side, three-way merged with host defaults
    merge_fields: tuple[FieldPath, ...] = ()
    back_sync: BackSyncPolicy = field(default_factory=BackSyncPolicy)
    excluded_annotations: tuple[str, ...] = ()
    has_status: bool = True
    default_grace_period: int | None = None
    to_host_fn: ToHostFn | None = None
    to_virtual_fn: ToVirtualFn | None = None
    diff_fn: DiffFn | None = None
    is_managed_fn: ManagedFn | None = None
    should_sync: Callable[[KubeObject], bool] | None = None
    host_existed: Callable[[KubeObject], bool] | None = None
    on_synced: SyncedHook | None = None

    @property
    def kind(self) -> str:
        return self.gvk.kind

    @property
    def name(self) -> str:
        """Syncer name matched against the controlled-by annotation."""
        return self.gvk.kind.lower()

    def syncs(self, obj: KubeObject) -> bool:
        return self.should_sync is None or self.should_sync(obj)


class DescriptorRegistry:
    """Descriptors by kind name and by GVK."""

    def __init__(self, descriptors: Iterable[KindDescriptor] = ()) -> None:
        self._by_gvk: dict[GroupVersionKind, KindDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: KindDescriptor) -> None:
        if descriptor.gvk in self._by_gvk:
            raise ValueError(f"descriptor already registered for {descriptor.gvk}")
        self._by_gvk[descriptor.gvk] = descriptor

    def get(self, gvk: GroupVersionKind) -> KindDescriptor | None:
        return self._by_gvk.get(gvk)

    def by_kind(self, kind: str) -> KindDescriptor | None:
        for descriptor in self._by_gvk.values():
            if descriptor.kind == kind:
                return descriptor
        return None

    def enabled(self, kinds: Iterable[str]) -> list[KindDescriptor]:
        """Descriptors for *kinds*, in the given order. Unknown kinds raise ValueError."""
        result = []
        for kind in kinds:
            descriptor = self.by_kind(kind)
            if descriptor is None:
                raise ValueError(f"no descriptor registered for kind {kind!r}")
            result.append(descriptor)
        return result

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self._by_gvk.values())

    def __len__(self) -> int:
        return len(self._by_gvk)
