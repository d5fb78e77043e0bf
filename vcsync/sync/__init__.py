"""Sync layer: descriptors, the reconcile state machine and the patcher.

Submodules:
    descriptor  -- KindDescriptor, BackSyncPolicy, DescriptorRegistry.
    context     -- SyncContext (long-lived) and SyncEvent (per reconcile).
    generic     -- Default ToHost / ToVirtual / Diff.
    kinds       -- Built-in ConfigMap, Secret and Pod descriptors.
    snapshots   -- Last-synced snapshot pairs.
    patcher     -- Merge-patch computation and minimal writes.
    mutation    -- External mutation hook with identity verification.
    engine      -- SyncEngine: the S0-S3 state machine.
"""

from vcsync.sync.context import SyncContext, SyncEvent
from vcsync.sync.descriptor import BackSyncPolicy, DescriptorRegistry, KindDescriptor
from vcsync.sync.engine import DONE, REQUEUE, ReconcileResult, SyncEngine
from vcsync.sync.snapshots import SnapshotCache

__all__ = [
    "DONE",
    "REQUEUE",
    "BackSyncPolicy",
    "DescriptorRegistry",
    "KindDescriptor",
    "ReconcileResult",
    "SnapshotCache",
    "SyncContext",
    "SyncEngine",
    "SyncEvent",
]
