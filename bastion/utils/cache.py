"""
Bastion - Shared Cache Utilities
================================

TTL-based cache used for short-lived guard bookkeeping: the feedback
suppression set and recently resolved audit attributions.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """
    A simple TTL-based cache with automatic expiration.

    Safe for single-threaded async use. The clock is injectable so
    callers that run on a fake clock (tests, replay) expire consistently.
    """

    def __init__(
        self,
        ttl: timedelta,
        max_size: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the TTL cache.

        Args:
            ttl: Time-to-live for cached items.
            max_size: Maximum number of items to store (oldest evicted first).
            clock: Returns the current time. Defaults to datetime.now.
        """
        self._ttl = ttl
        self._max_size = max_size
        self._clock = clock or datetime.now
        self._cache: Dict[K, Tuple[V, datetime]] = {}

    def get(self, key: K) -> Optional[V]:
        """
        Get an item from the cache if it exists and hasn't expired.

        Returns:
            The cached value or None if not found/expired.
        """
        entry = self._cache.get(key)
        if entry is None:
            return None

        value, cached_at = entry
        if self._clock() - cached_at > self._ttl:
            self._cache.pop(key, None)
            return None

        return value

    def set(self, key: K, value: V) -> None:
        """Set an item in the cache."""
        if len(self._cache) >= self._max_size and key not in self._cache:
            self._evict_oldest()

        self._cache[key] = (value, self._clock())

    def pop(self, key: K) -> Optional[V]:
        """Remove and return an unexpired item, or None."""
        value = self.get(key)
        self._cache.pop(key, None)
        return value

    def delete(self, key: K) -> bool:
        """
        Delete an item from the cache.

        Returns:
            True if item was deleted, False if not found.
        """
        return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        """Clear all items from the cache."""
        self._cache.clear()

    def _evict_oldest(self) -> None:
        """Evict the oldest item from the cache."""
        if not self._cache:
            return
        oldest_key = min(self._cache, key=lambda k: self._cache[k][1])
        del self._cache[oldest_key]

    def cleanup_expired(self) -> int:
        """
        Remove all expired items from the cache.

        Returns:
            Number of items removed.
        """
        now = self._clock()
        expired_keys = [
            k for k, (_, cached_at) in self._cache.items()
            if now - cached_at > self._ttl
        ]
        for key in expired_keys:
            del self._cache[key]
        return len(expired_keys)

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: K) -> bool:
        return self.get(key) is not None


__all__ = ["TTLCache"]
