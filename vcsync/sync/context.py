"""Long-lived SyncContext and per-reconcile SyncEvent."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from vcsync.models.config import TranslateConfig
from vcsync.models.objects import GroupVersionKind, KubeObject, deep_copy
from vcsync.observability.logging import get_logger
from vcsync.translate import MetadataTranslator, NameTranslator, OwnershipClassifier

if TYPE_CHECKING:
    from vcsync.cache.object_cache import ObjectCache
    from vcsync.clients.base import ClusterClient
    from vcsync.controller.events import EventRecorder
    from vcsync.controller.nodeservice import NodeServiceProvider

VIRTUAL = "virtual"
HOST = "host"


@dataclass
class SyncContext:
    """Everything a reconcile needs that outlives a single reconcile.

    Shared by all workers of all kinds; only the caches map is mutated, and
    only during startup.
    """

    config: TranslateConfig
    virtual_client: ClusterClient
    host_client: ClusterClient
    names: NameTranslator
    metadata: MetadataTranslator
    ownership: OwnershipClassifier
    caches: dict[tuple[str, GroupVersionKind], ObjectCache] = field(default_factory=dict)
    events: EventRecorder | None = None
    node_services: NodeServiceProvider | None = None
    log: Any = field(default_factory=lambda: get_logger("sync"))

    @classmethod
    def build(
        cls,
        config: TranslateConfig,
        virtual_client: ClusterClient,
        host_client: ClusterClient,
        **kwargs: Any,
    ) -> SyncContext:
        names = NameTranslator(config)
        return cls(
            config=config,
            virtual_client=virtual_client,
            host_client=host_client,
            names=names,
            metadata=MetadataTranslator(config, names),
            ownership=OwnershipClassifier(config, names),
            **kwargs,
        )

    def client(self, side: str) -> ClusterClient:
        if side == VIRTUAL:
            return self.virtual_client
        if side == HOST:
            return self.host_client
        raise ValueError(f"unknown cluster side: {side}")

    def cache(self, side: str, gvk: GroupVersionKind) -> ObjectCache | None:
        return self.caches.get((side, gvk))

    def attach_cache(self, cache: ObjectCache) -> None:
        self.caches[(cache.side, cache.gvk)] = cache


@dataclass
class SyncEvent:
    """Inputs and outputs of one reconcile.

    ``virtual`` / ``host`` are the objects as read and are never mutated.
    Descriptors write their intent into ``virtual_after`` / ``host_after``;
    the Patcher then writes the difference.
    """

    ctx: SyncContext
    gvk: GroupVersionKind
    virtual: KubeObject | None
    host: KubeObject | None
    virtual_after: KubeObject | None = None
    host_after: KubeObject | None = None
    virtual_old: KubeObject | None = None
    host_old: KubeObject | None = None

    @classmethod
    def create(
        cls,
        ctx: SyncContext,
        gvk: GroupVersionKind,
        virtual: KubeObject | None,
        host: KubeObject | None,
        virtual_old: KubeObject | None = None,
        host_old: KubeObject | None = None,
    ) -> SyncEvent:
        return cls(
            ctx=ctx,
            gvk=gvk,
            virtual=virtual,
            host=host,
            virtual_after=deep_copy(virtual),
            host_after=deep_copy(host),
            virtual_old=virtual_old,
            host_old=host_old,
        )
