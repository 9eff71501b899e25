# mypy: ignore-errors
# tests/services/test_chat_service.py
"""Tests for chat room membership, messages and visits."""

from datetime import UTC, datetime

import pytest

from protocol_forum.models import ChatRoomVisit
from protocol_forum.services import chat as chat_service


def test_create_chat_room_makes_creator_admin(db_session, test_user, other_user) -> None:
    room = chat_service.create_chat_room(
        db_session, test_user.id, "Breathwork", user_ids=[other_user.id, 777, other_user.id]
    )

    assert room.type == "private"
    creator = chat_service.get_membership(db_session, room.id, test_user.id)
    member = chat_service.get_membership(db_session, room.id, other_user.id)
    assert creator.role == "admin"
    assert member.role == "member"
    assert chat_service.active_member_ids(db_session, room.id) == sorted(
        [test_user.id, other_user.id]
    )


def test_get_chat_room_missing(db_session) -> None:
    with pytest.raises(chat_service.ChatRoomNotFound):
        chat_service.get_chat_room(db_session, 123)


class TestAddMembers:
    def test_admin_adds_new_members(self, db_session, chat_room, test_user, make_user) -> None:
        newcomer = make_user("Newcomer")

        added = chat_service.add_members(db_session, chat_room.id, test_user.id, [newcomer.id])

        assert added == [newcomer.id]
        assert newcomer.id in chat_service.active_member_ids(db_session, chat_room.id)

    def test_existing_active_members_are_not_reported(
        self, db_session, chat_room, test_user, other_user
    ) -> None:
        assert chat_service.add_members(db_session, chat_room.id, test_user.id, [other_user.id]) == []

    def test_reactivates_former_member(self, db_session, chat_room, test_user, other_user) -> None:
        chat_service.leave_chat_room(db_session, chat_room.id, other_user.id)

        added = chat_service.add_members(db_session, chat_room.id, test_user.id, [other_user.id])

        assert added == [other_user.id]
        assert chat_service.get_membership(db_session, chat_room.id, other_user.id).is_active

    def test_non_admin_is_forbidden(self, db_session, chat_room, other_user, make_user) -> None:
        newcomer = make_user("Newcomer")
        with pytest.raises(chat_service.ChatRoomForbidden):
            chat_service.add_members(db_session, chat_room.id, other_user.id, [newcomer.id])


def test_leave_requires_membership(db_session, chat_room, make_user) -> None:
    outsider = make_user("Outsider")
    with pytest.raises(chat_service.ChatRoomForbidden):
        chat_service.leave_chat_room(db_session, chat_room.id, outsider.id)


def test_send_message_updates_room(db_session, chat_room, other_user) -> None:
    message = chat_service.send_message(db_session, chat_room.id, other_user.id, "Morning all")

    assert message.chat_room_id == chat_room.id
    assert message.message_type == "text"
    db_session.refresh(chat_room)
    assert chat_room.updated_at == message.created_at


def test_former_member_cannot_send(db_session, chat_room, other_user) -> None:
    chat_service.leave_chat_room(db_session, chat_room.id, other_user.id)
    with pytest.raises(chat_service.ChatRoomForbidden):
        chat_service.send_message(db_session, chat_room.id, other_user.id, "Still here?")


def test_record_visit_upserts(db_session, chat_room, other_user) -> None:
    first = chat_service.record_visit(db_session, other_user.id, chat_room.id)
    first_visit = first.last_visited_at
    second = chat_service.record_visit(db_session, other_user.id, chat_room.id)

    assert second.id == first.id
    assert second.last_visited_at >= first_visit
    assert db_session.query(ChatRoomVisit).count() == 1


def test_record_visit_without_upsert_support(db_session, chat_room, other_user, monkeypatch) -> None:
    monkeypatch.setattr(chat_service, "upsert_statement", lambda *args, **kwargs: None)

    first = chat_service.record_visit(db_session, other_user.id, chat_room.id)
    second = chat_service.record_visit(db_session, other_user.id, chat_room.id)

    assert second.id == first.id
    assert db_session.query(ChatRoomVisit).count() == 1


def test_record_visit_refreshes_existing_row(db_session, chat_room, other_user) -> None:
    """A visit row written elsewhere is overwritten rather than duplicated."""
    stale = datetime(2020, 1, 1, tzinfo=UTC)
    db_session.add(ChatRoomVisit(user_id=other_user.id, chat_room_id=chat_room.id, last_visited_at=stale))
    db_session.commit()

    visit = chat_service.record_visit(db_session, other_user.id, chat_room.id)

    assert visit.last_visited_at > stale
    assert db_session.query(ChatRoomVisit).count() == 1
