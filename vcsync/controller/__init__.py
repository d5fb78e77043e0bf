"""Controller layer: queues, caches and sweeps around the sync engine.

Submodules:
    queue        -- WorkQueue: deduplicating single-flight queue with back-off.
    controller   -- SyncController: caches -> queue -> engine for one kind.
    events       -- EventRecorder: deduplicated Events on virtual objects.
    sweeps       -- SweepRunner: periodic resync and garbage collection.
    nodeservice  -- NodeServiceProvider: mutex-guarded per-node host Services.
"""

from vcsync.controller.controller import SyncController
from vcsync.controller.events import EventRecorder
from vcsync.controller.nodeservice import NodeServiceProvider
from vcsync.controller.queue import QueueFullError, WorkQueue
from vcsync.controller.sweeps import SweepRunner

__all__ = [
    "EventRecorder",
    "NodeServiceProvider",
    "QueueFullError",
    "SweepRunner",
    "SyncController",
    "WorkQueue",
]
