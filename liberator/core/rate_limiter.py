"""
Rate limiting for job submissions.

Uses collections.deque per client for O(1) operations instead of list
filtering which is O(n) per call and creates copies.
"""

import time
from collections import deque
from collections.abc import Callable
from threading import Lock

from .exceptions import RateLimitError


class SubmissionRateLimiter:
    """Thread-safe sliding-window limiter keyed by client identifier.

    Unlike a blocking limiter this never sleeps: a submission over the limit
    is rejected and the caller is told how long to wait.
    """

    def __init__(self, calls: int, period: float, clock: Callable[[], float] = time.monotonic):
        """Initialize rate limiter.

        Args:
            calls: Number of submissions allowed per client in the period
            period: Time period in seconds
            clock: Time source, injectable for tests
        """
        self.calls = calls
        self.period = period
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._lock = Lock()

    def check(self, client_id: str) -> None:
        """Record a submission for client_id.

        Raises:
            RateLimitError: If the client already used its allowance
        """
        with self._lock:
            now = self._clock()
            cutoff = now - self.period
            window = self._windows.setdefault(client_id, deque())

            # Remove expired timestamps from the left (O(1) per removal)
            while window and window[0] <= cutoff:
                window.popleft()

            if len(window) >= self.calls:
                retry_after = self.period - (now - window[0])
                raise RateLimitError(
                    f"Too many liberation requests, retry in {retry_after:.0f}s",
                    retry_after=retry_after,
                )

            window.append(now)

            # Drop idle clients so the table does not grow without bound
            if len(self._windows) > 10000:
                for key in [k for k, w in self._windows.items() if not w or w[-1] <= cutoff]:
                    del self._windows[key]

    def remaining(self, client_id: str) -> int:
        with self._lock:
            window = self._windows.get(client_id)
            if not window:
                return self.calls
            cutoff = self._clock() - self.period
            return self.calls - sum(1 for ts in window if ts > cutoff)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
