"""Application metrics using the Prometheus client library.

This module defines all metrics in one place: a single inventory of
everything the package measures.  Other modules import specific metrics
and increment/observe them at the point of action.

COUNTERS here answer "how often": records loaded and saved, tries
recorded, saves rejected because another request changed the row first.
The HISTOGRAM answers "how long": time spent waiting for a record lock.
A growing lock wait p99 is the early warning for double-submits piling
up on the same record.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

RECORD_OPERATIONS = Counter(
    "assess_record_operations_total",
    "Record persistence operations by outcome",
    ["operation", "result"],  # operation: load|create|save, result: ok|missing|conflict
)

TRIES_RECORDED = Counter(
    "assess_record_tries_total",
    "Per-part tries appended to attempt data",
    ["mode"],  # "scored" or "practice"
)

SAVE_CONFLICTS = Counter(
    "assess_record_save_conflicts_total",
    "Saves rejected by the optimistic revision check",
)

LOCK_WAIT = Histogram(
    "assess_record_lock_wait_seconds",
    "Time spent waiting to acquire a per-record lock",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
