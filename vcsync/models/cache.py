"""Cache readiness model."""

from __future__ import annotations

from enum import StrEnum


class CacheReadiness(StrEnum):
    """Readiness of an ObjectCache.

    WARMING  -- the initial List has not completed; reads are not authoritative.
    READY    -- populated and the watch is healthy.
    DEGRADED -- populated, but the watch keeps failing to reconnect.
    """

    WARMING = "warming"
    READY = "ready"
    DEGRADED = "degraded"
