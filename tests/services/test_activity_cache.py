# mypy: ignore-errors
# tests/services/test_activity_cache.py
"""Tests for the activity throttle cache."""

from unittest.mock import MagicMock

import redis

from protocol_forum.services.activity_cache import ActivityThrottleCache


def test_first_call_passes_then_throttles(activity_cache, clock) -> None:
    """The first sighting owns the write; later ones in the window are throttled."""
    assert activity_cache.should_throttle(1) is False
    clock.advance(seconds=10)
    assert activity_cache.should_throttle(1) is True


def test_entry_expires_after_ttl(activity_cache, clock) -> None:
    """After the window passes the next call is allowed through again."""
    activity_cache.should_throttle(1)
    clock.advance(seconds=65)
    assert activity_cache.should_throttle(1) is False


def test_users_are_tracked_independently(activity_cache) -> None:
    assert activity_cache.should_throttle(1) is False
    assert activity_cache.should_throttle(2) is False
    assert activity_cache.should_throttle(1) is True


def test_forget_drops_entry(activity_cache) -> None:
    """Forgetting a user lets their next activity through immediately."""
    activity_cache.should_throttle(1)
    activity_cache.forget(1)
    assert activity_cache.should_throttle(1) is False


def test_purge_expired_removes_only_stale_entries(activity_cache, clock) -> None:
    activity_cache.should_throttle(1)
    clock.advance(seconds=45)
    activity_cache.should_throttle(2)
    clock.advance(seconds=20)

    assert activity_cache.purge_expired() == 1
    assert activity_cache.should_throttle(2) is True


class TestRedisBackend:
    """Redis-backed behaviour uses SET NX EX and falls back on errors."""

    def test_uses_set_nx_with_ttl(self) -> None:
        client = MagicMock()
        client.set.side_effect = [True, None]
        cache = ActivityThrottleCache(60, redis_client=client)

        assert cache.should_throttle(7) is False
        assert cache.should_throttle(7) is True
        client.set.assert_called_with("user_activity:7", "1", nx=True, ex=60)

    def test_forget_deletes_key(self) -> None:
        client = MagicMock()
        cache = ActivityThrottleCache(60, redis_client=client)

        cache.forget(7)

        client.delete.assert_called_once_with("user_activity:7")

    def test_falls_back_to_memory_when_redis_fails(self, clock) -> None:
        client = MagicMock()
        client.set.side_effect = redis.ConnectionError("down")
        cache = ActivityThrottleCache(60, redis_client=client, clock=clock.monotonic)

        assert cache.should_throttle(3) is False
        assert cache.should_throttle(3) is True
        assert client.set.call_count == 1
