from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..errors import WaitTimeoutError

logger = logging.getLogger(__name__)


def poll_until(
    condition: Callable[[], bool],
    interval: float,
    timeout: float,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Check ``condition`` every ``interval`` seconds until it returns True.

    The first check happens after one interval. Errors raised by
    ``condition`` abort the wait and propagate.

    Raises:
        WaitTimeoutError: If the condition is still False once ``timeout``
            seconds have elapsed
    """
    if interval <= 0:
        raise ValueError("interval must be > 0")

    deadline = clock() + timeout
    while True:
        sleep(interval)
        if condition():
            return
        if clock() >= deadline:
            raise WaitTimeoutError(f"condition not met within {timeout:g}s")
        logger.debug("Condition not met yet, polling again in %gs", interval)
