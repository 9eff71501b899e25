# src/protocol_forum/models/chat.py
"""SQLAlchemy models for chat rooms, membership and room activity."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from protocol_forum.db.session import Base
from protocol_forum.db.time import UTCDateTime, utcnow
from protocol_forum.models.enums import ChatRoomType, MemberRole, sql_in


class ChatRoom(Base):
    """Private or group conversation between members."""

    __tablename__ = "chat_rooms"
    __table_args__ = (
        CheckConstraint(f"type IN {sql_in(ChatRoomType)}", name="ck_chat_rooms_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ChatRoomType.PRIVATE.value,
    )
    creator_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    members: Mapped[list[ChatRoomMember]] = relationship(
        "ChatRoomMember",
        back_populates="chat_room",
        cascade="all, delete-orphan",
    )


class ChatRoomMember(Base):
    """Membership of a user in a chat room.

    Inactive rows are kept so a member who left can be re-added without
    losing their original join date.
    """

    __tablename__ = "chat_room_users"
    __table_args__ = (
        CheckConstraint(f"role IN {sql_in(MemberRole)}", name="ck_chat_room_users_role"),
        Index("ix_chat_room_users_user_active", "user_id", "is_active"),
    )

    chat_room_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("chat_rooms.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=MemberRole.MEMBER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    chat_room: Mapped[ChatRoom] = relationship("ChatRoom", back_populates="members")


class ChatMessage(Base):
    """Message posted to a chat room."""

    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_room_created", "chat_room_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_room_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("chat_rooms.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(16), nullable=False, default="text")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class ChatRoomVisit(Base):
    """Last time a user opened a chat room; drives unread indicators."""

    __tablename__ = "chat_room_visits"
    __table_args__ = (
        UniqueConstraint("user_id", "chat_room_id", name="uq_chat_room_visits_user_room"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    chat_room_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("chat_rooms.id", ondelete="CASCADE"),
        nullable=False,
    )
    last_visited_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
