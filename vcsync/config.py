"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from vcsync.models.config import (
    APIConfig,
    ClusterConfig,
    ControllerConfig,
    LegacyMarkerPolicy,
    LogConfig,
    TranslateConfig,
    VcSyncConfig,
)

_DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"VCSYNC_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_list(key: str, default: str = "") -> tuple[str, ...]:
    return tuple(item.strip() for item in _env(key, default).split(",") if item.strip())


def _validate_dns_label(key: str, value: str) -> str:
    if not _DNS_LABEL.match(value) or len(value) > 63:
        raise ValueError(f"Invalid {key}: {value!r} is not a DNS-1123 label")
    return value


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_label_patterns(patterns: tuple[str, ...]) -> tuple[str, ...]:
    for pattern in patterns:
        if "*" in pattern and not pattern.endswith("/*"):
            raise ValueError(f"Invalid sync label pattern: {pattern}. Wildcards are only allowed as a '/*' suffix")
    return patterns


def _legacy_policy(value: str) -> LegacyMarkerPolicy:
    try:
        return LegacyMarkerPolicy(value.lower())
    except ValueError:
        valid = {p.value for p in LegacyMarkerPolicy}
        raise ValueError(f"Invalid legacy marker policy: {value}. Must be one of {valid}") from None


def load_config() -> VcSyncConfig:
    """Load configuration from VCSYNC_* environment variables."""
    current_namespace = _validate_dns_label("CURRENT_NAMESPACE", _env("CURRENT_NAMESPACE", "vcluster"))
    return VcSyncConfig(
        translate=TranslateConfig(
            name=_validate_dns_label("NAME", _env("NAME", "vcluster")),
            current_namespace=current_namespace,
            target_namespace=_validate_dns_label("TARGET_NAMESPACE", _env("TARGET_NAMESPACE", current_namespace)),
            multi_namespace=_env_bool("MULTI_NAMESPACE", False),
            namespace_prefix=_validate_dns_label("NAMESPACE_PREFIX", _env("NAMESPACE_PREFIX", "vcluster")),
            sync_labels=_validate_label_patterns(_env_list("SYNC_LABELS")),
            legacy_marker_policy=_legacy_policy(_env("LEGACY_MARKER_POLICY", "strict")),
            legacy_marker_values=_env_list("LEGACY_MARKER_VALUES"),
        ),
        controller=ControllerConfig(
            enabled_kinds=_env_list("ENABLED_KINDS", "ConfigMap,Secret,Pod"),
            workers=_env_int("WORKERS", 10, min_val=1, max_val=100),
            max_requeues=_env_int("MAX_REQUEUES", 15, min_val=1),
            queue_size=_env_int("QUEUE_SIZE", 10000, min_val=100),
            resync_interval=_env_int("RESYNC_INTERVAL", 300, min_val=10),
            gc_interval=_env_int("GC_INTERVAL", 60, min_val=5),
            cache_sync_timeout=_env_int("CACHE_SYNC_TIMEOUT", 120, min_val=5),
            mutation_webhook_url=_env("MUTATION_WEBHOOK_URL", ""),
        ),
        clusters=ClusterConfig(
            virtual_kubeconfig=_env("VIRTUAL_KUBECONFIG", "/data/vcluster/admin.conf"),
            host_kubeconfig=_env("HOST_KUBECONFIG", ""),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
