from __future__ import annotations

from prometheus_client import Counter, Histogram

OPERATIONS_TOTAL = Counter(
    "objpatch_operations_total",
    "Object operations executed, by operation kind and outcome.",
    ["operation", "status"],
)

OPERATION_LATENCY_SECONDS = Histogram(
    "objpatch_operation_latency_seconds",
    "Wall-clock latency of one object operation, retries and waits included.",
    ["operation"],
)

CONFLICT_RETRIES_TOTAL = Counter(
    "objpatch_conflict_retries_total",
    "Read-modify-write attempts repeated after an optimistic-concurrency conflict.",
)

DELETE_WAIT_SECONDS = Histogram(
    "objpatch_delete_wait_seconds",
    "Time spent waiting for a foreground delete to complete.",
    ["status"],
    buckets=(0.5, 1, 2, 3, 5, 8, 13, 20, 30),
)
