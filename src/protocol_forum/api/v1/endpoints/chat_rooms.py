# src/protocol_forum/api/v1/endpoints/chat_rooms.py
"""Chat room endpoints. Every mutation is announced after it commits."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from protocol_forum.models import ChatRoom
from protocol_forum.schemas.chat import (
    ChatMessageOut,
    ChatRoomCreate,
    ChatRoomOut,
    MembersAdd,
    MessageCreate,
    VisitOut,
)
from protocol_forum.schemas.presence import OnlineUsersOut
from protocol_forum.services import chat as chat_service
from protocol_forum.services.broadcast import MESSAGE_SENT_ACTION

from ..dependencies import ActiveUserDep, FanoutDep, PresenceDep, SessionDep
from .users import to_presence_out

router = APIRouter(prefix="/chat-rooms", tags=["chat-rooms"])


def _room_out(room: ChatRoom, member_ids: list[int]) -> ChatRoomOut:
    return ChatRoomOut(
        id=room.id,
        name=room.name,
        description=room.description,
        type=room.type,
        creator_id=room.creator_id,
        created_at=room.created_at,
        updated_at=room.updated_at,
        member_ids=member_ids,
    )


def _translate(err: Exception) -> HTTPException:
    if isinstance(err, chat_service.ChatRoomNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err))
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(err))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_chat_room(
    body: ChatRoomCreate,
    current_user: ActiveUserDep,
    db: SessionDep,
    fanout: FanoutDep,
) -> ChatRoomOut:
    """Create a room; the caller becomes its admin."""
    room = chat_service.create_chat_room(
        db,
        current_user.id,
        body.name,
        description=body.description,
        room_type=body.type,
        user_ids=body.user_ids,
    )
    member_ids = chat_service.active_member_ids(db, room.id)
    fanout.publish_chat_room_update(db, room.id, "created", actor_id=current_user.id)
    return _room_out(room, member_ids)


@router.post("/{chat_room_id}/members")
def add_members(
    chat_room_id: int,
    body: MembersAdd,
    current_user: ActiveUserDep,
    db: SessionDep,
    fanout: FanoutDep,
) -> ChatRoomOut:
    """Add users to a room. Admins only."""
    try:
        added = chat_service.add_members(db, chat_room_id, current_user.id, body.user_ids)
        room = chat_service.get_chat_room(db, chat_room_id)
    except (chat_service.ChatRoomNotFound, chat_service.ChatRoomForbidden) as err:
        raise _translate(err) from err

    if added:
        fanout.publish_chat_room_update(db, chat_room_id, "members_added", added)
    return _room_out(room, chat_service.active_member_ids(db, chat_room_id))


@router.post("/{chat_room_id}/leave")
def leave_chat_room(
    chat_room_id: int,
    current_user: ActiveUserDep,
    db: SessionDep,
    fanout: FanoutDep,
) -> dict[str, str]:
    """Leave a room. The remaining members are notified."""
    try:
        chat_service.leave_chat_room(db, chat_room_id, current_user.id)
    except (chat_service.ChatRoomNotFound, chat_service.ChatRoomForbidden) as err:
        raise _translate(err) from err

    fanout.publish_chat_room_update(db, chat_room_id, "member_left", actor_id=current_user.id)
    return {"message": "Left chat room"}


@router.post("/{chat_room_id}/messages", status_code=status.HTTP_201_CREATED)
def send_message(
    chat_room_id: int,
    body: MessageCreate,
    current_user: ActiveUserDep,
    db: SessionDep,
    fanout: FanoutDep,
) -> ChatMessageOut:
    """Post a message and notify every other active member."""
    try:
        message = chat_service.send_message(
            db, chat_room_id, current_user.id, body.message, body.message_type
        )
    except (chat_service.ChatRoomNotFound, chat_service.ChatRoomForbidden) as err:
        raise _translate(err) from err

    fanout.publish_chat_room_update(
        db, chat_room_id, MESSAGE_SENT_ACTION, actor_id=current_user.id
    )
    return ChatMessageOut.model_validate(message)


@router.post("/{chat_room_id}/visit")
def record_visit(
    chat_room_id: int,
    current_user: ActiveUserDep,
    db: SessionDep,
    fanout: FanoutDep,
) -> VisitOut:
    """Mark the room as read by the caller."""
    try:
        visit = chat_service.record_visit(db, current_user.id, chat_room_id)
    except (chat_service.ChatRoomNotFound, chat_service.ChatRoomForbidden) as err:
        raise _translate(err) from err

    # Only the visitor's own unread flag changes.
    fanout.publish_chat_room_update(db, chat_room_id, "visited", [current_user.id])
    return VisitOut.model_validate(visit)


@router.get("/{chat_room_id}/online-users")
def get_online_users(
    chat_room_id: int,
    current_user: ActiveUserDep,
    db: SessionDep,
    presence: PresenceDep,
) -> OnlineUsersOut:
    """List online members of a room the caller belongs to."""
    try:
        chat_service.get_chat_room(db, chat_room_id)
    except chat_service.ChatRoomNotFound as err:
        raise _translate(err) from err
    membership = chat_service.get_membership(db, chat_room_id, current_user.id)
    if membership is None or not membership.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this chat room.",
        )

    users = presence.online_users_for_chat_room(db, chat_room_id)
    return OnlineUsersOut(
        online_users=[to_presence_out(u) for u in users],
        count=len(users),
        chat_room_id=chat_room_id,
    )
