"""Fire-and-forget fanout of real-time events to channel subscribers.

Channels follow a fixed naming convention:

- ``chat-room.{id}``      events for members of one chat room
- ``user-status``         presence changes visible to every signed-in user
- ``notifications.{id}``  private events for a single user

Publishing never blocks on, retries for, or persists anything for absent
subscribers; a client that was disconnected recovers the latest state by
polling the status endpoints.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections import defaultdict
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any

import redis
import redis.asyncio as aioredis
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from protocol_forum.core.settings import settings
from protocol_forum.db.time import utcnow
from protocol_forum.models import ChatMessage, ChatRoom, ChatRoomMember, ChatRoomVisit, User

logger = logging.getLogger(__name__)

USER_STATUS_CHANNEL = "user-status"
USER_STATUS_EVENT = "user.status.changed"
CHAT_ROOM_UPDATED_EVENT = "chatroom.updated"
MESSAGE_SENT_ACTION = "message_sent"

_CHAT_ROOM_CHANNEL_RE = re.compile(r"^chat-room\.(\d+)$")
_NOTIFICATIONS_CHANNEL_RE = re.compile(r"^notifications\.(\d+)$")


def chat_room_channel(chat_room_id: int) -> str:
    return f"chat-room.{chat_room_id}"


def notifications_channel(user_id: int) -> str:
    return f"notifications.{user_id}"


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class BroadcastEvent:
    """A typed payload delivered to one channel. Never persisted."""

    channel: str
    event: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> dict[str, Any]:
        return {"channel": self.channel, "event": self.event, "data": self.data}


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------
class BroadcastTransport:
    """Delivery mechanism behind the fanout."""

    def send(self, event: BroadcastEvent) -> None:
        raise NotImplementedError

    def subscribe(self, channel: str):
        """Return an async context manager yielding an async iterator of messages."""
        raise NotImplementedError


@dataclass(eq=False)
class _Subscriber:
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue[dict[str, Any]]


class InMemoryTransport(BroadcastTransport):
    """In-process hub used for single-worker deployments and tests.

    Publishers may run on any thread (sync request handlers execute in a
    threadpool), so delivery hops onto each subscriber's event loop.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, set[_Subscriber]] = defaultdict(set)
        self._lock = Lock()

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, ()))

    def send(self, event: BroadcastEvent) -> None:
        message = event.to_message()
        with self._lock:
            targets = list(self._subscribers.get(event.channel, ()))
        for subscriber in targets:
            try:
                subscriber.loop.call_soon_threadsafe(subscriber.queue.put_nowait, message)
            except RuntimeError:
                # Event loop already closed; the subscriber is gone.
                self._remove(event.channel, subscriber)

    def _remove(self, channel: str, subscriber: _Subscriber) -> None:
        with self._lock:
            subscribers = self._subscribers.get(channel)
            if subscribers is None:
                return
            subscribers.discard(subscriber)
            if not subscribers:
                self._subscribers.pop(channel, None)

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncIterator[AsyncIterator[dict[str, Any]]]:
        subscriber = _Subscriber(loop=asyncio.get_running_loop(), queue=asyncio.Queue())
        with self._lock:
            self._subscribers[channel].add(subscriber)
        try:
            yield self._iterate(subscriber)
        finally:
            self._remove(channel, subscriber)

    @staticmethod
    async def _iterate(subscriber: _Subscriber) -> AsyncIterator[dict[str, Any]]:
        while True:
            yield await subscriber.queue.get()


class RedisTransport(BroadcastTransport):
    """Redis pub/sub transport for deployments with several API workers."""

    def __init__(self, url: str | None = None, client: Any | None = None) -> None:
        self._url = url or settings.redis_url
        self._client = client or redis.from_url(self._url)  # type: ignore[no-untyped-call]

    def send(self, event: BroadcastEvent) -> None:
        self._client.publish(event.channel, json.dumps(event.to_message(), default=str))

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncIterator[AsyncIterator[dict[str, Any]]]:
        client = aioredis.from_url(self._url)
        pubsub = client.pubsub()
        await pubsub.subscribe(channel)
        try:
            yield self._iterate(pubsub)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            await client.aclose()

    @staticmethod
    async def _iterate(pubsub: Any) -> AsyncIterator[dict[str, Any]]:
        async for raw in pubsub.listen():
            if raw.get("type") != "message":
                continue
            yield json.loads(raw["data"])


# ---------------------------------------------------------------------------
# Fanout
# ---------------------------------------------------------------------------
class BroadcastFanout:
    """Resolves target channels for state changes and publishes to each."""

    def __init__(self, transport: BroadcastTransport) -> None:
        self.transport = transport

    def publish(self, channel: str, event: str, data: dict[str, Any]) -> bool:
        """Publish one event; failures are logged and reported as False."""
        try:
            self.transport.send(BroadcastEvent(channel=channel, event=event, data=data))
        except Exception:
            logger.exception("Failed to broadcast %s on %s", event, channel)
            return False
        return True

    def publish_presence_change(
        self,
        db: Session,
        user_id: int,
        status: str,
        is_online: bool,
        last_seen_at: datetime | None,
    ) -> list[str]:
        """Publish a presence change to the user's rooms and ``user-status``.

        Returns:
            The channels the event was published to.
        """
        user = db.get(User, user_id)
        room_ids = db.scalars(
            select(ChatRoomMember.chat_room_id)
            .join(ChatRoom, ChatRoom.id == ChatRoomMember.chat_room_id)
            .where(
                ChatRoomMember.user_id == user_id,
                ChatRoomMember.is_active.is_(True),
                ChatRoom.is_active.is_(True),
            )
            .order_by(ChatRoomMember.chat_room_id)
        ).all()

        channels = [chat_room_channel(room_id) for room_id in room_ids]
        channels.append(USER_STATUS_CHANNEL)

        payload = {
            "user": {"id": user_id, "name": user.name if user is not None else None},
            "status": status,
            "is_online": is_online,
            "last_seen_at": _isoformat(last_seen_at),
            "timestamp": utcnow().isoformat(),
        }
        for channel in channels:
            self.publish(channel, USER_STATUS_EVENT, payload)
        return channels

    def publish_chat_room_update(
        self,
        db: Session,
        chat_room_id: int,
        action: str,
        affected_user_ids: Iterable[int] | None = None,
        *,
        actor_id: int | None = None,
    ) -> list[str]:
        """Publish a room update to each affected user's private channel.

        With no explicit recipients every active member except ``actor_id`` is
        notified. Each recipient gets its own ``has_unread_messages`` flag.

        Returns:
            The channels the event was published to.
        """
        room = db.get(ChatRoom, chat_room_id)
        if room is None:
            logger.info("Skipping broadcast for missing chat room %s", chat_room_id)
            return []

        active_member_ids = db.scalars(
            select(ChatRoomMember.user_id).where(
                ChatRoomMember.chat_room_id == chat_room_id,
                ChatRoomMember.is_active.is_(True),
            )
        ).all()

        recipients = list(dict.fromkeys(affected_user_ids or ()))
        if not recipients:
            recipients = [user_id for user_id in active_member_ids if user_id != actor_id]

        latest = db.scalars(
            select(ChatMessage)
            .where(ChatMessage.chat_room_id == chat_room_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(1)
        ).first()
        sender_name = None
        if latest is not None:
            sender = db.get(User, latest.sender_id)
            sender_name = sender.name if sender is not None else None

        visits: dict[int, datetime] = {}
        if recipients:
            visits = dict(
                db.execute(
                    select(ChatRoomVisit.user_id, ChatRoomVisit.last_visited_at).where(
                        ChatRoomVisit.chat_room_id == chat_room_id,
                        ChatRoomVisit.user_id.in_(recipients),
                    )
                ).all()
            )

        room_data = {
            "id": room.id,
            "name": room.name,
            "description": room.description,
            "type": room.type,
            "creator_id": room.creator_id,
            "created_at": _isoformat(room.created_at),
            "updated_at": _isoformat(room.updated_at),
            "latest_message": (
                {
                    "id": latest.id,
                    "sender_id": latest.sender_id,
                    "sender_name": sender_name,
                    "message": latest.message,
                    "message_type": latest.message_type,
                    "created_at": _isoformat(latest.created_at),
                }
                if latest is not None
                else None
            ),
            "members_count": len(active_member_ids),
        }
        timestamp = utcnow().isoformat()

        channels: list[str] = []
        for user_id in recipients:
            channel = notifications_channel(user_id)
            payload = {
                "chat_room": {
                    **room_data,
                    "has_unread_messages": _has_unread(
                        action,
                        latest.created_at if latest is not None else None,
                        visits.get(user_id),
                    ),
                },
                "action": action,
                "timestamp": timestamp,
            }
            self.publish(channel, CHAT_ROOM_UPDATED_EVENT, payload)
            channels.append(channel)
        return channels


def _has_unread(
    action: str,
    latest_message_at: datetime | None,
    last_visited_at: datetime | None,
) -> bool:
    if latest_message_at is None:
        return False
    if action == MESSAGE_SENT_ACTION:
        return True
    if last_visited_at is None:
        return True
    return latest_message_at > last_visited_at


# ---------------------------------------------------------------------------
# Channel authorization
# ---------------------------------------------------------------------------
def authorize_channel(db: Session, user_id: int, channel_name: str) -> bool:
    """Return whether ``user_id`` may subscribe to ``channel_name``.

    Accepts the ``private-`` prefix that Echo/Pusher clients send.
    """
    channel = channel_name.removeprefix("private-")

    if channel == USER_STATUS_CHANNEL:
        return True

    match = _NOTIFICATIONS_CHANNEL_RE.match(channel)
    if match:
        return int(match.group(1)) == user_id

    match = _CHAT_ROOM_CHANNEL_RE.match(channel)
    if match:
        chat_room_id = int(match.group(1))
        member_count = db.scalar(
            select(func.count())
            .select_from(ChatRoomMember)
            .join(ChatRoom, ChatRoom.id == ChatRoomMember.chat_room_id)
            .where(
                ChatRoomMember.chat_room_id == chat_room_id,
                ChatRoomMember.user_id == user_id,
                ChatRoomMember.is_active.is_(True),
            )
        )
        return bool(member_count)

    return False


_transport: BroadcastTransport | None = None


def get_broadcast_transport() -> BroadcastTransport:
    """Return the process-wide transport selected by ``BROADCAST_DRIVER``."""
    global _transport
    if _transport is None:
        if settings.broadcast_driver == "redis":
            _transport = RedisTransport()
        else:
            _transport = InMemoryTransport()
    return _transport


def get_fanout() -> BroadcastFanout:
    """Return a fanout bound to the process-wide transport."""
    return BroadcastFanout(get_broadcast_transport())
