"""Prometheus metrics for vcsync.

All collectors register on the default registry; ``/metrics`` in the API
serves them with ``prometheus_client.generate_latest``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

reconcile_total = Counter(
    "vcsync_reconcile_total",
    "Reconcile invocations by kind and result (done, requeue, error).",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "vcsync_reconcile_duration_seconds",
    "Wall-clock duration of a single reconcile.",
    ["kind"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

writes_total = Counter(
    "vcsync_writes_total",
    "API writes issued by the engine.",
    ["side", "kind", "op"],
)

sweep_errors_total = Counter(
    "vcsync_sweep_errors_total",
    "Per-item failures encountered by background sweeps.",
    ["sweep"],
)

queue_depth = Gauge(
    "vcsync_queue_depth",
    "Keys waiting in a kind's work queue.",
    ["kind"],
)

events_total = Counter(
    "vcsync_events_total",
    "Kubernetes Events recorded on virtual objects.",
    ["reason"],
)
