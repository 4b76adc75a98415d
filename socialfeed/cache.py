"""In-process friend list cache.

Maps a user id to the ids of that user's accepted friends. Entries expire
after a fixed TTL and the least recently used entry is evicted once the
cache is full. The store stays the source of truth: callers invalidate both
parties of a relationship before a mutating call returns.

Every invalidation bumps a per-user generation. A reader takes the
generation before loading from the store and hands it back to ``set``; a
fill whose generation is out of date is dropped, so a load that raced an
invalidation never repopulates the cache.

Example:
    >>> cache = FriendCache(ttl_seconds=300, max_size=100)
    >>> generation = cache.generation("alice")
    >>> cache.set("alice", ["bob", "carol"], generation)
    True
    >>> cache.get("alice")
    ['bob', 'carol']
    >>> cache.invalidate_pair("alice", "bob")
    >>> cache.get("alice") is None
    True
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from socialfeed.config import settings
from socialfeed.logging import logger


@dataclass
class _Entry:
    friend_ids: list[str]
    expires_at: float


@dataclass
class CacheStats:
    """Counters reported by ``FriendCache.stats``."""

    size: int
    max_size: int
    ttl_seconds: float
    hits: int
    misses: int
    evictions: int
    stale_fills: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class FriendCache:
    """Bounded TTL cache of accepted friend ids.

    Args:
        ttl_seconds: Entry lifetime (defaults to settings.friend_cache_ttl_seconds)
        max_size: Capacity (defaults to settings.friend_cache_max_size)
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.friend_cache_ttl_seconds
        self.max_size = max_size if max_size is not None else settings.friend_cache_max_size
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if self.max_size < 1:
            raise ValueError("max_size must be at least 1")

        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._generations: dict[str, int] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._stale_fills = 0

    def generation(self, user_id: str) -> int:
        """Invalidation count for ``user_id``, taken before loading from the store."""
        with self._lock:
            return self._generations.get(user_id, 0)

    def get(self, user_id: str) -> list[str] | None:
        """Return a copy of the cached friend ids, or None on miss or expiry."""
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[user_id]
                self._misses += 1
                return None
            self._entries.move_to_end(user_id)
            self._hits += 1
            return list(entry.friend_ids)

    def set(self, user_id: str, friend_ids: list[str], generation: int | None = None) -> bool:
        """Store a friend list.

        Args:
            user_id: Owner of the list
            friend_ids: Accepted friend ids
            generation: Value of ``generation(user_id)`` taken before the load

        Returns:
            False if the user was invalidated after ``generation`` was taken
        """
        with self._lock:
            if generation is not None and generation != self._generations.get(user_id, 0):
                self._stale_fills += 1
                logger.debug(f"Dropped stale friend list for {user_id}")
                return False
            self._entries[user_id] = _Entry(
                friend_ids=list(friend_ids),
                expires_at=self._clock() + self.ttl_seconds,
            )
            self._entries.move_to_end(user_id)
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Evicted friend list for {evicted}")
            return True

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._drop(user_id)

    def invalidate_pair(self, user_a: str, user_b: str) -> None:
        """Drop the entries of both participants of a relationship."""
        with self._lock:
            self._drop(user_a)
            self._drop(user_b)
        logger.debug(f"Invalidated friend lists for {user_a} and {user_b}")

    def _drop(self, user_id: str) -> None:
        self._entries.pop(user_id, None)
        self._generations[user_id] = self._generations.get(user_id, 0) + 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                max_size=self.max_size,
                ttl_seconds=self.ttl_seconds,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                stale_fills=self._stale_fills,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["CacheStats", "FriendCache"]
