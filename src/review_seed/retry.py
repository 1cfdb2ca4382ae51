"""Bounded polling helper.

Used by the bootstrap coordinator to wait for primary election without
global counters or timing marks.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class PollResult:
    """Outcome of a ``poll_until`` call."""

    succeeded: bool
    attempts: int
    elapsed: float
    value: Any = None


def poll_until(
    check: Callable[[], Any],
    *,
    timeout: float,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollResult:
    """Call ``check`` every ``interval`` seconds until it returns a truthy value.

    At least one attempt is made even when ``timeout`` is zero. The helper
    never sleeps past the deadline: the last wait is shortened to whatever
    time remains.

    Args:
        check: Zero-argument callable; a truthy return ends polling.
        timeout: Deadline in seconds, measured from the first call.
        interval: Seconds to wait between attempts.
        sleep: Injectable sleep function.
        clock: Injectable monotonic clock.

    Returns:
        PollResult with the truthy value on success.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")

    start = clock()
    deadline = start + max(timeout, 0)
    attempts = 0

    while True:
        attempts += 1
        value = check()
        now = clock()
        if value:
            return PollResult(True, attempts, now - start, value)

        remaining = deadline - now
        if remaining <= 0:
            logger.debug(f"Polling gave up after {attempts} attempts")
            return PollResult(False, attempts, now - start)

        sleep(min(interval, remaining))
