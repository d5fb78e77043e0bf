"""Configuration data structures.

Every config object is frozen: the engine consumes a resolved configuration
and never mutates it, so several engine instances can run side by side in
one process with different settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class LegacyMarkerPolicy(StrEnum):
    """How marker-label values written by older releases are treated."""

    STRICT = "strict"
    ACCEPT_LEGACY = "accept-legacy"


@dataclass(frozen=True)
class TranslateConfig:
    """Name, namespace and metadata translation settings."""

    name: str = "vcluster"
    current_namespace: str = "vcluster"
    target_namespace: str = "vcluster"
    multi_namespace: bool = False
    namespace_prefix: str = "vcluster"
    sync_labels: tuple[str, ...] = ()
    legacy_marker_policy: LegacyMarkerPolicy = LegacyMarkerPolicy.STRICT
    legacy_marker_values: tuple[str, ...] = ()

    @property
    def scope_namespace(self) -> str:
        """Namespace that scopes cluster-scoped host names and markers."""
        if self.multi_namespace:
            return self.current_namespace
        return self.target_namespace


@dataclass(frozen=True)
class ControllerConfig:
    """Reconcile loop and background sweep settings."""

    enabled_kinds: tuple[str, ...] = ("ConfigMap", "Secret", "Pod")
    workers: int = 10
    max_requeues: int = 15
    queue_size: int = 10000
    resync_interval: int = 300
    gc_interval: int = 60
    cache_sync_timeout: int = 120
    mutation_webhook_url: str = ""


@dataclass(frozen=True)
class ClusterConfig:
    """Where to find the two API servers. Empty path means in-cluster config."""

    virtual_kubeconfig: str = "/data/vcluster/admin.conf"
    host_kubeconfig: str = ""


@dataclass(frozen=True)
class APIConfig:
    """Health/metrics HTTP surface configuration."""

    port: int = 8080


@dataclass(frozen=True)
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass(frozen=True)
class VcSyncConfig:
    """Top-level vcsync configuration."""

    translate: TranslateConfig = field(default_factory=TranslateConfig)
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    clusters: ClusterConfig = field(default_factory=ClusterConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
