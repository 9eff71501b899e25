"""Chat room helpers: rooms, memberships, messages and visit tracking.

These functions only mutate and commit. Callers publish the resulting
``chatroom.updated`` events through :class:`BroadcastFanout` afterwards.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from protocol_forum.db.time import utcnow
from protocol_forum.db.upsert import upsert_statement
from protocol_forum.models import (
    ChatMessage,
    ChatRoom,
    ChatRoomMember,
    ChatRoomType,
    ChatRoomVisit,
    MemberRole,
    User,
)

__all__ = [
    "ChatRoomNotFound",
    "ChatRoomForbidden",
    "get_chat_room",
    "get_membership",
    "active_member_ids",
    "create_chat_room",
    "add_members",
    "leave_chat_room",
    "send_message",
    "record_visit",
]


class ChatRoomNotFound(LookupError):
    """Raised when a chat room does not exist or is inactive."""


class ChatRoomForbidden(PermissionError):
    """Raised when the caller lacks the membership or role an action needs."""


def get_chat_room(db: Session, chat_room_id: int) -> ChatRoom:
    """Return an active chat room or raise ChatRoomNotFound."""
    room = db.get(ChatRoom, chat_room_id)
    if room is None or not room.is_active:
        raise ChatRoomNotFound(f"Chat room {chat_room_id} not found")
    return room


def get_membership(db: Session, chat_room_id: int, user_id: int) -> ChatRoomMember | None:
    """Return the membership row, active or not."""
    return db.get(ChatRoomMember, (chat_room_id, user_id))


def _require_active_member(db: Session, chat_room_id: int, user_id: int) -> ChatRoomMember:
    membership = get_membership(db, chat_room_id, user_id)
    if membership is None or not membership.is_active:
        raise ChatRoomForbidden("You are not a member of this chat room.")
    return membership


def active_member_ids(db: Session, chat_room_id: int) -> list[int]:
    """Return ids of active members ordered by id."""
    return list(
        db.scalars(
            select(ChatRoomMember.user_id)
            .where(
                ChatRoomMember.chat_room_id == chat_room_id,
                ChatRoomMember.is_active.is_(True),
            )
            .order_by(ChatRoomMember.user_id)
        )
    )


def _existing_user_ids(db: Session, user_ids: Iterable[int]) -> list[int]:
    wanted = list(dict.fromkeys(user_ids))
    if not wanted:
        return []
    found = set(db.scalars(select(User.id).where(User.id.in_(wanted))))
    return [user_id for user_id in wanted if user_id in found]


def create_chat_room(
    db: Session,
    creator_id: int,
    name: str,
    *,
    description: str | None = None,
    room_type: ChatRoomType | str = ChatRoomType.PRIVATE,
    user_ids: Sequence[int] = (),
) -> ChatRoom:
    """Create a room with the creator as admin and ``user_ids`` as members.

    Unknown user ids are ignored.
    """
    room = ChatRoom(
        name=name,
        description=description,
        type=ChatRoomType(room_type).value,
        creator_id=creator_id,
        is_active=True,
    )
    db.add(room)
    db.flush()

    now = utcnow()
    db.add(
        ChatRoomMember(
            chat_room_id=room.id,
            user_id=creator_id,
            role=MemberRole.ADMIN.value,
            is_active=True,
            joined_at=now,
        )
    )
    for user_id in _existing_user_ids(db, user_ids):
        if user_id == creator_id:
            continue
        db.add(
            ChatRoomMember(
                chat_room_id=room.id,
                user_id=user_id,
                role=MemberRole.MEMBER.value,
                is_active=True,
                joined_at=now,
            )
        )
    db.commit()
    db.refresh(room)
    return room


def add_members(
    db: Session,
    chat_room_id: int,
    actor_id: int,
    user_ids: Sequence[int],
) -> list[int]:
    """Add or reactivate members; only room admins may do this.

    Returns:
        Ids of users that became active members through this call.
    """
    get_chat_room(db, chat_room_id)
    actor = _require_active_member(db, chat_room_id, actor_id)
    if actor.role != MemberRole.ADMIN.value:
        raise ChatRoomForbidden("Only admins can add users to this chat room.")

    added: list[int] = []
    for user_id in _existing_user_ids(db, user_ids):
        membership = get_membership(db, chat_room_id, user_id)
        if membership is None:
            db.add(
                ChatRoomMember(
                    chat_room_id=chat_room_id,
                    user_id=user_id,
                    role=MemberRole.MEMBER.value,
                    is_active=True,
                    joined_at=utcnow(),
                )
            )
            added.append(user_id)
        elif not membership.is_active:
            membership.is_active = True
            added.append(user_id)
    db.commit()
    return added


def leave_chat_room(db: Session, chat_room_id: int, user_id: int) -> None:
    """Deactivate the caller's membership."""
    get_chat_room(db, chat_room_id)
    membership = _require_active_member(db, chat_room_id, user_id)
    membership.is_active = False
    db.commit()


def send_message(
    db: Session,
    chat_room_id: int,
    sender_id: int,
    message: str,
    message_type: str = "text",
) -> ChatMessage:
    """Persist a message from an active member."""
    room = get_chat_room(db, chat_room_id)
    _require_active_member(db, chat_room_id, sender_id)

    chat_message = ChatMessage(
        chat_room_id=chat_room_id,
        sender_id=sender_id,
        message=message,
        message_type=message_type,
        created_at=utcnow(),
    )
    db.add(chat_message)
    room.updated_at = chat_message.created_at
    db.commit()
    db.refresh(chat_message)
    return chat_message


def record_visit(db: Session, user_id: int, chat_room_id: int) -> ChatRoomVisit:
    """Create or refresh the user's last-visit timestamp for a room."""
    get_chat_room(db, chat_room_id)
    _require_active_member(db, chat_room_id, user_id)

    visit_filter = (
        ChatRoomVisit.user_id == user_id,
        ChatRoomVisit.chat_room_id == chat_room_id,
    )
    values: dict[str, object] = {
        "user_id": user_id,
        "chat_room_id": chat_room_id,
        "last_visited_at": utcnow(),
    }
    stmt = upsert_statement(
        db.get_bind().dialect.name,
        ChatRoomVisit,
        values,
        ("user_id", "chat_room_id"),
        ("last_visited_at",),
    )
    if stmt is not None:
        db.execute(stmt)
    else:
        visit = db.scalars(select(ChatRoomVisit).where(*visit_filter)).first()
        if visit is None:
            visit = ChatRoomVisit(user_id=user_id, chat_room_id=chat_room_id)
            db.add(visit)
        visit.last_visited_at = values["last_visited_at"]
    db.commit()

    return db.scalars(
        select(ChatRoomVisit)
        .where(*visit_filter)
        .execution_options(populate_existing=True)
    ).one()
