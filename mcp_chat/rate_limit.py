"""Token-bucket admission control for tool invocations."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class RateLimiter:
    """
    Token bucket with a sustained rate (tokens per second) and a burst size.

    allow() never blocks. A limiter built with a non-positive rate or burst is
    disabled and admits every call.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._tokens: float = float(burst)
        self._last: float = clock()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.rate > 0 and self.burst > 0

    def allow(self) -> bool:
        """Take one token if available."""
        if not self.enabled:
            return True

        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._last)
            self._last = now
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)

            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False
