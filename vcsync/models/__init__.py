"""Core data structures for vcsync."""

from vcsync.models.config import (
    ControllerConfig,
    LegacyMarkerPolicy,
    TranslateConfig,
    VcSyncConfig,
)
from vcsync.models.objects import GroupVersionKind, KubeObject, ObjectKey

__all__ = [
    "ControllerConfig",
    "GroupVersionKind",
    "KubeObject",
    "LegacyMarkerPolicy",
    "ObjectKey",
    "TranslateConfig",
    "VcSyncConfig",
]
