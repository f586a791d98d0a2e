from .registry import (
    CONFLICT_RETRIES_TOTAL,
    DELETE_WAIT_SECONDS,
    OPERATION_LATENCY_SECONDS,
    OPERATIONS_TOTAL,
)

__all__ = [
    "CONFLICT_RETRIES_TOTAL",
    "DELETE_WAIT_SECONDS",
    "OPERATION_LATENCY_SECONDS",
    "OPERATIONS_TOTAL",
]
