"""User-visible Events on virtual objects.

EventRecorder   -- Writes core/v1 Events into the virtual cluster so tenants
                   can see why their object is not syncing (kubectl describe).
EventDeduplicator -- Suppresses identical events within a cooldown window so
                   a resync storm does not flood the virtual cluster.

Recording an event is best-effort: a failure is logged and never fails the
reconcile that triggered it.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta

import structlog

from vcsync.clients.base import ClusterClient
from vcsync.clients.errors import ApiError
from vcsync.models.objects import GroupVersionKind, KubeObject, name_of, namespace_of, resource_version_of, uid_of
from vcsync.observability.metrics import events_total

_log = structlog.get_logger(component="controller.events")

EVENT_GVK = GroupVersionKind("", "v1", "Event")

_DEDUP_COOLDOWN = timedelta(minutes=5)
_COMPONENT = "vcsync"


class EventDeduplicator:
    """Suppresses duplicate events within a cooldown window.

    The deduplication key is ``(namespace, kind, name, reason, message)``.
    State is held in-process; a restart resets all cooldowns.
    """

    def __init__(self, cooldown: timedelta = _DEDUP_COOLDOWN) -> None:
        self._cooldown = cooldown
        self._last_sent: dict[tuple[str, str, str, str, str], datetime] = {}

    def should_send(self, obj: KubeObject, reason: str, message: str) -> bool:
        key = (namespace_of(obj), str(obj.get("kind", "")), name_of(obj), reason, message)
        now = datetime.now(tz=UTC)
        last = self._last_sent.get(key)
        if last is not None and (now - last) < self._cooldown:
            _log.debug("event_suppressed_by_deduplicator", object=f"{key[0]}/{key[2]}", reason=reason)
            return False
        self._last_sent[key] = now
        self._evict_expired(now)
        return True

    def _evict_expired(self, now: datetime) -> None:
        expired = [k for k, ts in self._last_sent.items() if (now - ts) >= self._cooldown]
        for k in expired:
            del self._last_sent[k]


class EventRecorder:
    """Creates Events about virtual objects in the virtual cluster."""

    def __init__(self, client: ClusterClient, deduplicator: EventDeduplicator | None = None) -> None:
        self._client = client
        self._dedup = deduplicator or EventDeduplicator()

    async def warning(self, obj: KubeObject, reason: str, message: str) -> bool:
        return await self.record(obj, "Warning", reason, message)

    async def normal(self, obj: KubeObject, reason: str, message: str) -> bool:
        return await self.record(obj, "Normal", reason, message)

    async def record(self, obj: KubeObject, event_type: str, reason: str, message: str) -> bool:
        """Create the event. Returns False if suppressed or rejected."""
        if not self._dedup.should_send(obj, reason, message):
            return False
        body = build_event(obj, event_type, reason, message)
        try:
            await self._client.create(EVENT_GVK, body)
        except ApiError as exc:
            _log.warning("event_create_failed", reason=reason, object=name_of(obj), error=str(exc))
            return False
        events_total.labels(reason=reason).inc()
        return True


def build_event(obj: KubeObject, event_type: str, reason: str, message: str) -> KubeObject:
    now = datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
    namespace = namespace_of(obj) or "default"
    return {
        "apiVersion": "v1",
        "kind": "Event",
        "metadata": {
            "name": f"{name_of(obj)}.{time.time_ns():x}",
            "namespace": namespace,
        },
        "involvedObject": {
            "apiVersion": obj.get("apiVersion", ""),
            "kind": obj.get("kind", ""),
            "name": name_of(obj),
            "namespace": namespace_of(obj),
            "uid": uid_of(obj),
            "resourceVersion": resource_version_of(obj),
        },
        "type": event_type,
        "reason": reason,
        "message": message,
        "source": {"component": _COMPONENT},
        "reportingComponent": _COMPONENT,
        "firstTimestamp": now,
        "lastTimestamp": now,
        "count": 1,
    }
