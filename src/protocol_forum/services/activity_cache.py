"""Short-lived cache that coalesces per-user activity into one write per window."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from threading import Lock
from typing import Any

import redis

from protocol_forum.core.settings import settings

logger = logging.getLogger(__name__)


class ActivityThrottleCache:
    """Time-windowed "seen recently" flags keyed by user id.

    Backed by Redis when a client is supplied; otherwise (or once Redis
    becomes unreachable) an in-process expiry map is used. Losing entries only
    costs one extra presence write, so the fallback never affects correctness.
    """

    def __init__(
        self,
        ttl_seconds: int | None = None,
        *,
        redis_client: Any | None = None,
        clock: Callable[[], float] = time.monotonic,
        key_prefix: str = "user_activity",
    ) -> None:
        self.ttl_seconds = int(ttl_seconds or settings.presence_activity_ttl_seconds)
        self._redis = redis_client
        self._clock = clock
        self._key_prefix = key_prefix
        self._expiry: dict[str, float] = {}
        self._lock = Lock()

    def _key(self, user_id: int) -> str:
        return f"{self._key_prefix}:{user_id}"

    def should_throttle(self, user_id: int) -> bool:
        """Return True if the user was seen within the window.

        When False is returned the entry has been created, so the caller owns
        the single write for this window.
        """
        key = self._key(user_id)
        if self._redis is not None:
            try:
                # SET NX EX: check-and-create in one round trip.
                created = self._redis.set(key, "1", nx=True, ex=self.ttl_seconds)
                return not created
            except redis.RedisError as exc:
                logger.warning("Activity cache falling back to memory: %s", exc)
                self._redis = None

        now = self._clock()
        with self._lock:
            expiry = self._expiry.get(key)
            if expiry is not None and expiry > now:
                return True
            self._expiry[key] = now + self.ttl_seconds
            return False

    def forget(self, user_id: int) -> None:
        """Drop the user's entry so their next activity is written through."""
        key = self._key(user_id)
        if self._redis is not None:
            try:
                self._redis.delete(key)
                return
            except redis.RedisError as exc:
                logger.warning("Activity cache falling back to memory: %s", exc)
                self._redis = None
        with self._lock:
            self._expiry.pop(key, None)

    def purge_expired(self) -> int:
        """Remove expired in-process entries and return how many were dropped."""
        now = self._clock()
        with self._lock:
            stale = [key for key, expiry in self._expiry.items() if expiry <= now]
            for key in stale:
                del self._expiry[key]
        return len(stale)


_activity_cache: ActivityThrottleCache | None = None


def get_activity_cache() -> ActivityThrottleCache:
    """Return the process-wide activity cache configured from settings."""
    global _activity_cache
    if _activity_cache is None:
        client = None
        if settings.cache_backend == "redis":
            client = redis.from_url(settings.redis_url)  # type: ignore[no-untyped-call]
        _activity_cache = ActivityThrottleCache(redis_client=client)
    return _activity_cache
