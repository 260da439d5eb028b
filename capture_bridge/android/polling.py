"""Bounded fixed-interval polling.

Device-side operations (pull, install, uninstall) and host tools that write
their output asynchronously are waited on with ``poll_until``. The wait is
counted in virtual time (``interval`` per attempt) so tests can inject a
recording ``sleep`` and assert exact attempt counts.
"""

from __future__ import annotations

import math
import time
from enum import Enum
from typing import Callable

from capture_bridge.logging import get_logger

log = get_logger(source=__name__, tags=["poll"])


class PollResult(Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"

    def __bool__(self) -> bool:
        return self is PollResult.READY


def poll_until(
    condition: Callable[[], bool],
    *,
    interval: float,
    timeout: float,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "condition",
) -> PollResult:
    """Check ``condition`` every ``interval`` seconds until it holds or ``timeout`` elapses.

    The condition is evaluated ``ceil(timeout / interval)`` times at most,
    sleeping after each miss. No backoff.

    Raises:
        ValueError: If interval is not positive
    """
    if interval <= 0:
        raise ValueError(f"Poll interval must be positive, got {interval}")
    # 1.1 / 0.1 is 11.000000000000002; rounding keeps it at 11 attempts.
    attempts = math.ceil(round(timeout / interval, 9))
    for attempt in range(attempts):
        elapsed = attempt * interval
        if condition():
            log.debug(f"{description} ready after {elapsed:g}s")
            return PollResult.READY
        log.trace(f"Waiting for {description} ({elapsed:g}/{timeout:g}s)")
        sleep(interval)
    log.debug(f"Timed out waiting for {description} after {timeout:g}s")
    return PollResult.TIMED_OUT
