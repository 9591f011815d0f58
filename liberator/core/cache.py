"""Thread-safe TTL cache backing the in-memory job and archive stores.

Entries expire after a fixed retention window, which is how job records and
output archives are evicted regardless of job outcome.
"""

import threading
import time
from collections.abc import Callable
from typing import Any


class TTLCache:
    """Retention cache for job records and archives.

    Each entry carries its own deadline, set on insert and optionally kept
    across updates so a job record never outlives its submission window.
    Uses a dictionary for O(1) lookup with cleanup on write.
    """

    def __init__(
        self,
        maxsize: int = 1000,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.time,
    ):
        """Create an empty cache.

        Args:
            maxsize: Entry cap, the soonest-expiring entry is evicted past it
            ttl_seconds: Default lifetime of an entry in seconds
            clock: Time source, injectable for tests
        """
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[Any, float]] = {}  # key -> (value, expire_time)
        self._lock = threading.RLock()

    def get(self, key: str) -> tuple[bool, Any]:
        """Look up a live entry.

        Returns:
            (True, value) for a live entry, (False, None) otherwise; stored
            None values are still hits.
        """
        with self._lock:
            if key in self._cache:
                value, expire_time = self._cache[key]
                if self._clock() < expire_time:
                    return True, value
                # Past its deadline
                del self._cache[key]
            return False, None

    def set(
        self,
        key: str,
        value: Any,
        keep_expiry: bool = False,
        ttl_seconds: float | None = None,
    ) -> None:
        """Insert or replace an entry.

        Args:
            key: Cache key
            value: Value to cache
            keep_expiry: Reuse the existing expiry instead of restarting the TTL
            ttl_seconds: Per-entry TTL, defaults to the cache TTL
        """
        with self._lock:
            if keep_expiry and key in self._cache:
                _, expire_time = self._cache[key]
                self._cache[key] = (value, expire_time)
                return

            if key not in self._cache and len(self._cache) >= self.maxsize:
                self.purge_expired()
                if len(self._cache) >= self.maxsize:
                    self._evict_oldest()

            ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
            self._cache[key] = (value, self._clock() + ttl)

    def expires_in(self, key: str) -> float | None:
        """Seconds until key expires, or None if absent or expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            remaining = entry[1] - self._clock()
            return remaining if remaining > 0 else None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def values(self) -> list[Any]:
        """Return all live values in insertion order."""
        with self._lock:
            now = self._clock()
            return [value for value, exp in self._cache.values() if exp > now]

    def purge_expired(self) -> int:
        """Drop every entry past its deadline.

        Returns:
            Count of dropped entries
        """
        with self._lock:
            now = self._clock()
            expired_keys = [k for k, (_, exp) in self._cache.items() if exp <= now]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)

    def _evict_oldest(self) -> None:
        """Evict whichever entry would expire first."""
        if not self._cache:
            return
        oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k][1])
        del self._cache[oldest_key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
