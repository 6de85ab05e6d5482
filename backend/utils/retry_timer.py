# backend/utils/retry_timer.py
"""
Retry timing for lookups that may succeed later (e.g. secret store reads
while the host is still starting up).
"""

import time
from typing import Callable, Optional


class RetryTimer:
    """
    Deadline plus fixed wait between attempts.

    Typical loop:

        timer = RetryTimer(120, 1)
        while timer.has_not_elapsed():
            ...
            timer.sleep_for_interval()
    """

    def __init__(
        self,
        duration_seconds: float,
        interval_seconds: float,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Args:
            duration_seconds: Total time attempts may take
            interval_seconds: Wait between attempts
            clock: Monotonic time source (tests pass a fake)
            sleep: Sleep function (tests pass a fake)
        """
        self.duration = duration_seconds
        self.interval = interval_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._start = self._clock()

    def has_not_elapsed(self) -> bool:
        return self._clock() - self._start < self.duration

    def remaining(self) -> float:
        return max(0.0, self.duration - (self._clock() - self._start))

    def sleep_for_interval(self) -> None:
        """Wait one interval, never past the deadline"""
        wait = min(self.interval, self.remaining())
        if wait > 0:
            self._sleep(wait)
