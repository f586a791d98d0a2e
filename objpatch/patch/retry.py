from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Iterator
from typing import TypeVar

from ..config import RetryConfig
from ..errors import ConflictError
from .metrics import observe_conflict_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY = RetryConfig()


def is_conflict(exc: BaseException) -> bool:
    """Default retry predicate: only optimistic-concurrency conflicts."""
    return isinstance(exc, ConflictError)


def backoff_delays(
    config: RetryConfig,
    rng: Callable[[], float] = random.random,
) -> Iterator[float]:
    """
    Yield the sleeps between attempts (``config.steps - 1`` of them).

    Each delay is the current duration plus up to ``jitter`` of it; the
    duration grows by ``factor`` and is clamped to ``cap`` if set.
    """
    duration = config.duration
    for _ in range(config.steps - 1):
        delay = duration
        if config.jitter > 0:
            delay = duration + rng() * config.jitter * duration
        yield delay
        duration *= config.factor
        if config.cap is not None:
            duration = min(duration, config.cap)


def retry_on_conflict(
    fn: Callable[[], T],
    config: RetryConfig = DEFAULT_RETRY,
    *,
    is_retryable: Callable[[BaseException], bool] = is_conflict,
    sleep: Callable[[float], None] = time.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """
    Run a read-modify-write attempt, repeating it on conflict.

    ``fn`` must perform the whole cycle (read the latest version, modify,
    write) on each call; nothing is carried over between attempts.

    Only errors accepted by ``is_retryable`` are retried. Any other error
    propagates immediately. When every attempt conflicted, the last
    conflict error is raised.
    """
    delays = backoff_delays(config, rng)
    attempt = 1
    while True:
        try:
            return fn()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            delay = next(delays, None)
            if delay is None:
                logger.info(
                    "Giving up after %d conflicting attempts: %s", attempt, exc
                )
                raise
            logger.debug(
                "Conflict on attempt %d, retrying in %.3fs: %s", attempt, delay, exc
            )
            observe_conflict_retry()
            sleep(delay)
            attempt += 1
