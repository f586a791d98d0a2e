from __future__ import annotations

import logging

from ..metrics.registry import (
    CONFLICT_RETRIES_TOTAL,
    DELETE_WAIT_SECONDS,
    OPERATION_LATENCY_SECONDS,
    OPERATIONS_TOTAL,
)

logger = logging.getLogger(__name__)


def observe_operation(operation: str, status: str, latency_s: float) -> None:
    """Record one executed operation. Never raises."""
    try:
        OPERATIONS_TOTAL.labels(operation=operation, status=status).inc()
        OPERATION_LATENCY_SECONDS.labels(operation=operation).observe(latency_s)
    except Exception:
        # Metric errors must not mask the operation's own outcome
        logger.debug("Failed to record operation metrics", exc_info=True)


def observe_conflict_retry() -> None:
    try:
        CONFLICT_RETRIES_TOTAL.inc()
    except Exception:
        logger.debug("Failed to record conflict retry", exc_info=True)


def observe_delete_wait(status: str, latency_s: float) -> None:
    try:
        DELETE_WAIT_SECONDS.labels(status=status).observe(latency_s)
    except Exception:
        logger.debug("Failed to record delete wait", exc_info=True)
