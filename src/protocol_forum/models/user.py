# src/protocol_forum/models/user.py
"""SQLAlchemy models for user accounts and presence."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from protocol_forum.db.session import Base
from protocol_forum.db.time import UTCDateTime, utcnow
from protocol_forum.models.enums import UserStatus, sql_in


class User(Base):
    """Forum member together with their presence state.

    Presence lives on the user row: ``status`` is what other users see and
    ``is_online`` mirrors it (true for every status except ``offline``).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(f"status IN {sql_in(UserStatus)}", name="ck_users_status"),
        Index("ix_users_online_last_seen", "is_online", "last_seen_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    last_seen_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=UserStatus.OFFLINE.value,
    )
