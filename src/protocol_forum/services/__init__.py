# src/protocol_forum/services/__init__.py
"""Business logic services for the Protocol Forum application."""

from .activity_cache import ActivityThrottleCache
from .broadcast import BroadcastFanout, InMemoryTransport, RedisTransport
from .presence import PresenceTracker
from .scores import VoteScore

__all__ = [
    "ActivityThrottleCache",
    "BroadcastFanout",
    "InMemoryTransport",
    "RedisTransport",
    "PresenceTracker",
    "VoteScore",
]
