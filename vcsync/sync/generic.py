"""Default ToHost / ToVirtual / Diff behavior shared by descriptors.

Descriptors that only need to forward a few fields list them in
``forward_fields`` / ``merge_fields`` and leave the hooks unset; those that
need more (e.g. Pods rewriting volume references) wrap these functions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from vcsync.models.objects import (
    KubeObject,
    ObjectKey,
    deep_copy,
    get_field,
    metadata,
    reset_object_metadata,
    set_annotations,
    set_field,
    set_labels,
)
from vcsync.sync.patcher import three_way_merge

if TYPE_CHECKING:
    from vcsync.sync.context import SyncContext, SyncEvent
    from vcsync.sync.descriptor import KindDescriptor


def translate_to_host(ctx: SyncContext, descriptor: KindDescriptor, virtual: KubeObject) -> KubeObject:
    """Build a fresh host object for *virtual*: new identity, translated metadata, no status."""
    host = deep_copy(virtual)
    assert host is not None
    reset_object_metadata(host)
    host.pop("status", None)

    key = ctx.names.host_key(ObjectKey.of(virtual), descriptor.namespaced)
    meta = metadata(host)
    meta["name"] = key.name
    if key.namespace:
        meta["namespace"] = key.namespace
    else:
        meta.pop("namespace", None)

    set_labels(host, ctx.metadata.host_labels(virtual))
    set_annotations(
        host,
        ctx.metadata.host_annotations(virtual, None, descriptor.excluded_annotations, descriptor.gvk),
    )
    return host


def translate_to_virtual(ctx: SyncContext, descriptor: KindDescriptor, host: KubeObject) -> KubeObject:
    """Build a virtual object for a managed *host* object (backward creation)."""
    key = ctx.names.virtual_key(host)
    if key is None:
        raise ValueError("host object carries no identity annotations")

    virtual = deep_copy(host)
    assert virtual is not None
    reset_object_metadata(virtual)
    virtual.pop("status", None)

    meta = metadata(virtual)
    meta["name"] = key.name
    if key.namespace:
        meta["namespace"] = key.namespace
    else:
        meta.pop("namespace", None)

    set_labels(virtual, ctx.metadata.virtual_labels(host))
    set_annotations(virtual, ctx.metadata.virtual_annotations(host, None, descriptor.excluded_annotations))
    return virtual


def default_diff(event: SyncEvent, descriptor: KindDescriptor) -> None:
    """Write the converged state of both sides into ``*_after``."""
    virtual = event.virtual
    host = event.host
    if virtual is None or host is None or event.virtual_after is None or event.host_after is None:
        return

    md = event.ctx.metadata
    policy = descriptor.back_sync

    if policy.labels_from_host:
        set_labels(event.virtual_after, md.virtual_labels(host, virtual))
    else:
        set_labels(event.host_after, md.host_labels(virtual, host))

    if policy.annotations_from_host:
        set_annotations(event.virtual_after, md.virtual_annotations(host, virtual, descriptor.excluded_annotations))
    else:
        set_annotations(
            event.host_after,
            md.host_annotations(virtual, host, descriptor.excluded_annotations, descriptor.gvk),
        )

    for path in descriptor.forward_fields:
        set_field(event.host_after, path, get_field(virtual, path))
    for path in descriptor.merge_fields:
        merged = three_way_merge(get_field(event.virtual_old, path), get_field(virtual, path), get_field(host, path))
        set_field(event.host_after, path, merged)

    for path in policy.spec_fields:
        set_field(event.virtual_after, path, get_field(host, path))
    if policy.status:
        set_field(event.virtual_after, ("status",), host.get("status"))


def to_host(ctx: SyncContext, descriptor: KindDescriptor, virtual: KubeObject) -> KubeObject:
    fn = descriptor.to_host_fn or translate_to_host
    return fn(ctx, descriptor, virtual)


def to_virtual(ctx: SyncContext, descriptor: KindDescriptor, host: KubeObject) -> KubeObject:
    fn = descriptor.to_virtual_fn or translate_to_virtual
    return fn(ctx, descriptor, host)


def diff(event: SyncEvent, descriptor: KindDescriptor) -> None:
    fn = descriptor.diff_fn or default_diff
    fn(event, descriptor)
