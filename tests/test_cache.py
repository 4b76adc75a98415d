"""Unit tests for the friend list cache."""

import pytest

from socialfeed.cache import FriendCache


class TestFriendCache:
    """Tests for TTL, LRU and invalidation behaviour."""

    def test_miss_then_hit(self, friend_cache):
        """Test a set entry is returned until it expires."""
        assert friend_cache.get("alice") is None

        friend_cache.set("alice", ["bob", "carol"])

        assert friend_cache.get("alice") == ["bob", "carol"]

    def test_entries_expire_after_ttl(self, friend_cache, cache_timer):
        """Test entries never outlive their TTL."""
        friend_cache.set("alice", ["bob"])

        cache_timer.advance(299)
        assert friend_cache.get("alice") == ["bob"]

        cache_timer.advance(1)
        assert friend_cache.get("alice") is None
        assert len(friend_cache) == 0

    def test_returned_list_is_a_copy(self, friend_cache):
        """Test callers cannot mutate cached state."""
        friend_cache.set("alice", ["bob"])

        friend_cache.get("alice").append("mallory")

        assert friend_cache.get("alice") == ["bob"]

    def test_lru_eviction(self, cache_timer):
        """Test the least recently used entry is evicted at capacity."""
        cache = FriendCache(ttl_seconds=60, max_size=2, clock=cache_timer)
        cache.set("a", [])
        cache.set("b", [])
        cache.get("a")  # b is now least recently used
        cache.set("c", [])

        assert cache.get("b") is None
        assert cache.get("a") == []
        assert cache.get("c") == []
        assert cache.stats().evictions == 1

    def test_invalidate_pair(self, friend_cache):
        """Test both parties are dropped and other entries kept."""
        friend_cache.set("alice", ["bob"])
        friend_cache.set("bob", ["alice"])
        friend_cache.set("carol", [])

        friend_cache.invalidate_pair("alice", "bob")

        assert friend_cache.get("alice") is None
        assert friend_cache.get("bob") is None
        assert friend_cache.get("carol") == []

    def test_invalidate_missing_is_noop(self, friend_cache):
        """Test invalidating an unknown user does nothing."""
        friend_cache.invalidate("ghost")
        assert len(friend_cache) == 0

    def test_fill_after_invalidation_is_dropped(self, friend_cache):
        """Test a list loaded before an invalidation is not stored after it."""
        generation = friend_cache.generation("alice")
        friend_cache.invalidate_pair("alice", "bob")

        assert friend_cache.set("alice", [], generation) is False
        assert friend_cache.get("alice") is None
        assert friend_cache.stats().stale_fills == 1

    def test_fill_with_current_generation_is_kept(self, friend_cache):
        friend_cache.invalidate("alice")
        generation = friend_cache.generation("alice")

        assert friend_cache.set("alice", ["bob"], generation) is True
        assert friend_cache.get("alice") == ["bob"]
        assert friend_cache.generation("bob") == 0

    def test_stats(self, friend_cache):
        """Test hit and miss counters."""
        friend_cache.get("alice")
        friend_cache.set("alice", ["bob"])
        friend_cache.get("alice")
        friend_cache.get("alice")

        stats = friend_cache.stats()

        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.size == 1
        assert stats.max_size == 100
        assert stats.hit_rate == pytest.approx(2 / 3)

    def test_clear(self, friend_cache):
        friend_cache.set("alice", [])
        friend_cache.clear()
        assert len(friend_cache) == 0

    @pytest.mark.parametrize("ttl,size", [(0, 10), (-1, 10), (10, 0)])
    def test_invalid_bounds_rejected(self, ttl, size):
        """Test non-positive TTL or capacity is rejected."""
        with pytest.raises(ValueError):
            FriendCache(ttl_seconds=ttl, max_size=size)

    def test_defaults_come_from_settings(self):
        """Test TTL and capacity default to the configured values."""
        from socialfeed.config import settings

        cache = FriendCache()

        assert cache.ttl_seconds == settings.friend_cache_ttl_seconds
        assert cache.max_size == settings.friend_cache_max_size
