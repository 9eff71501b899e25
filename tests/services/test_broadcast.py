# mypy: ignore-errors
# tests/services/test_broadcast.py
"""Tests for broadcast fanout, unread flags and channel authorization."""

import asyncio
import json
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from protocol_forum.services import chat as chat_service
from protocol_forum.services.broadcast import (
    CHAT_ROOM_UPDATED_EVENT,
    USER_STATUS_CHANNEL,
    BroadcastEvent,
    BroadcastFanout,
    BroadcastTransport,
    InMemoryTransport,
    RedisTransport,
    _has_unread,
    authorize_channel,
    chat_room_channel,
    notifications_channel,
)


class ExplodingTransport(BroadcastTransport):
    def send(self, event: BroadcastEvent) -> None:
        raise ConnectionError("broker unavailable")


def test_channel_names() -> None:
    assert chat_room_channel(5) == "chat-room.5"
    assert notifications_channel(9) == "notifications.9"


class TestPresenceFanout:
    def test_publishes_to_rooms_and_user_status(
        self, db_session, fanout, transport, chat_room, other_user
    ) -> None:
        """A presence change reaches every active room of the user plus user-status."""
        channels = fanout.publish_presence_change(
            db_session, other_user.id, "away", True, datetime(2026, 1, 1, tzinfo=UTC)
        )

        assert channels == [chat_room_channel(chat_room.id), USER_STATUS_CHANNEL]
        assert transport.channels() == channels
        payload = transport.events[0].data
        assert payload["status"] == "away"
        assert payload["last_seen_at"] == "2026-01-01T00:00:00+00:00"

    def test_skips_rooms_the_user_left(
        self, db_session, fanout, chat_room, other_user
    ) -> None:
        chat_service.leave_chat_room(db_session, chat_room.id, other_user.id)

        channels = fanout.publish_presence_change(db_session, other_user.id, "online", True, None)

        assert channels == [USER_STATUS_CHANNEL]


class TestChatRoomFanout:
    def test_defaults_to_active_members_except_actor(
        self, db_session, fanout, chat_room, test_user, other_user
    ) -> None:
        channels = fanout.publish_chat_room_update(
            db_session, chat_room.id, "updated", actor_id=test_user.id
        )
        assert channels == [notifications_channel(other_user.id)]

    def test_explicit_recipients(self, db_session, fanout, transport, chat_room, test_user) -> None:
        channels = fanout.publish_chat_room_update(
            db_session, chat_room.id, "visited", [test_user.id]
        )

        assert channels == [notifications_channel(test_user.id)]
        (event,) = transport.events
        assert event.event == CHAT_ROOM_UPDATED_EVENT
        assert event.data["action"] == "visited"
        assert event.data["chat_room"]["id"] == chat_room.id
        assert event.data["chat_room"]["members_count"] == 2
        assert event.data["chat_room"]["latest_message"] is None
        assert event.data["chat_room"]["has_unread_messages"] is False

    def test_message_sent_marks_unread_with_latest_message(
        self, db_session, fanout, transport, chat_room, test_user, other_user
    ) -> None:
        chat_service.record_visit(db_session, other_user.id, chat_room.id)
        chat_service.send_message(db_session, chat_room.id, test_user.id, "Hi there")

        fanout.publish_chat_room_update(
            db_session, chat_room.id, "message_sent", actor_id=test_user.id
        )

        (event,) = transport.events_for(notifications_channel(other_user.id))
        room = event.data["chat_room"]
        assert room["has_unread_messages"] is True
        assert room["latest_message"]["message"] == "Hi there"
        assert room["latest_message"]["sender_name"] == test_user.name

    def test_visit_after_message_clears_unread(
        self, db_session, fanout, transport, chat_room, test_user, other_user
    ) -> None:
        chat_service.send_message(db_session, chat_room.id, test_user.id, "Hi there")
        chat_service.record_visit(db_session, other_user.id, chat_room.id)

        fanout.publish_chat_room_update(db_session, chat_room.id, "visited", [other_user.id])

        (event,) = transport.events
        assert event.data["chat_room"]["has_unread_messages"] is False

    def test_missing_room_publishes_nothing(self, db_session, fanout, transport) -> None:
        assert fanout.publish_chat_room_update(db_session, 999, "updated") == []
        assert transport.events == []


class TestHasUnread:
    earlier = datetime(2026, 1, 1, 8, 0, tzinfo=UTC)
    later = datetime(2026, 1, 1, 9, 0, tzinfo=UTC)

    def test_no_messages(self) -> None:
        assert _has_unread("message_sent", None, None) is False

    def test_message_sent_always_unread(self) -> None:
        assert _has_unread("message_sent", self.earlier, self.later) is True

    def test_never_visited(self) -> None:
        assert _has_unread("updated", self.earlier, None) is True

    def test_compares_latest_message_with_visit(self) -> None:
        assert _has_unread("updated", self.later, self.earlier) is True
        assert _has_unread("updated", self.earlier, self.later) is False


def test_transport_failure_is_logged_and_swallowed(db_session, chat_room, other_user, caplog) -> None:
    """Fire-and-forget: a broken transport never fails the caller."""
    fanout = BroadcastFanout(ExplodingTransport())

    assert fanout.publish("user-status", "user.status.changed", {}) is False
    channels = fanout.publish_presence_change(db_session, other_user.id, "online", True, None)

    assert channels == [chat_room_channel(chat_room.id), USER_STATUS_CHANNEL]
    assert "Failed to broadcast" in caplog.text


class TestAuthorizeChannel:
    def test_user_status_open_to_everyone(self, db_session, test_user) -> None:
        assert authorize_channel(db_session, test_user.id, "user-status") is True

    def test_notifications_only_for_owner(self, db_session, test_user, other_user) -> None:
        assert authorize_channel(db_session, test_user.id, f"notifications.{test_user.id}") is True
        assert authorize_channel(db_session, test_user.id, f"notifications.{other_user.id}") is False

    def test_chat_room_requires_active_membership(
        self, db_session, chat_room, other_user, make_user
    ) -> None:
        outsider = make_user("Outsider")
        channel = f"chat-room.{chat_room.id}"

        assert authorize_channel(db_session, other_user.id, channel) is True
        assert authorize_channel(db_session, outsider.id, channel) is False

        chat_service.leave_chat_room(db_session, chat_room.id, other_user.id)
        assert authorize_channel(db_session, other_user.id, channel) is False

    def test_private_prefix_is_accepted(self, db_session, chat_room, test_user) -> None:
        assert authorize_channel(db_session, test_user.id, f"private-chat-room.{chat_room.id}") is True

    @pytest.mark.parametrize("channel", ["", "presence", "chat-room.abc", "notifications.", "admin.1"])
    def test_unknown_channels_denied(self, db_session, test_user, channel) -> None:
        assert authorize_channel(db_session, test_user.id, channel) is False


class TestInMemoryTransport:
    @pytest.mark.asyncio
    async def test_delivers_to_subscribers_of_the_channel(self) -> None:
        hub = InMemoryTransport()
        async with hub.subscribe("user-status") as messages:
            assert hub.subscriber_count("user-status") == 1
            hub.send(BroadcastEvent("user-status", "user.status.changed", {"status": "away"}))
            hub.send(BroadcastEvent("chat-room.1", "ignored", {}))

            message = await asyncio.wait_for(anext(messages), timeout=1)

        assert message == {
            "channel": "user-status",
            "event": "user.status.changed",
            "data": {"status": "away"},
        }
        assert hub.subscriber_count("user-status") == 0

    def test_send_without_subscribers_is_a_noop(self) -> None:
        InMemoryTransport().send(BroadcastEvent("user-status", "user.status.changed", {}))


def test_redis_transport_publishes_json() -> None:
    client = MagicMock()
    transport = RedisTransport(url="redis://localhost:6379/0", client=client)

    transport.send(BroadcastEvent("chat-room.3", "chatroom.updated", {"action": "created"}))

    channel, raw = client.publish.call_args.args
    assert channel == "chat-room.3"
    assert json.loads(raw) == {
        "channel": "chat-room.3",
        "event": "chatroom.updated",
        "data": {"action": "created"},
    }
