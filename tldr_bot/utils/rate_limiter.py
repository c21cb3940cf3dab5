"""Minimum-interval rate limiter for interactive summary requests."""

import math
import time
from typing import Callable, Dict, Hashable


class RateLimiter:
    """Allow one request per key per `min_interval` seconds.

    Rejected requests are not queued and do not extend the window.
    """

    def __init__(self, min_interval: float = 30.0, clock: Callable[[], float] = time.monotonic):
        """Initialize rate limiter.

        Args:
            min_interval: Seconds that must pass between accepted requests per key
            clock: Monotonic time source (injectable for tests)
        """
        self.min_interval = min_interval
        self._clock = clock
        self._last_accepted: Dict[Hashable, float] = {}

    def check(self, key: Hashable) -> int:
        """Try to accept a request for `key`.

        Returns:
            0 if accepted (and recorded), otherwise whole seconds to wait
        """
        now = self._clock()
        last = self._last_accepted.get(key)

        if last is not None:
            remaining = self.min_interval - (now - last)
            if remaining > 0:
                return max(1, math.ceil(remaining))

        self._last_accepted[key] = now
        self._prune(now)
        return 0

    def reset(self, key: Hashable) -> None:
        """Forget the last accepted request for `key`."""
        self._last_accepted.pop(key, None)

    def _prune(self, now: float) -> None:
        expired = [k for k, t in self._last_accepted.items() if now - t >= self.min_interval]
        for k in expired:
            del self._last_accepted[k]
