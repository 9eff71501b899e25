# src/protocol_forum/models/vote.py
"""Models capturing voting interactions on forum content."""

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from protocol_forum.db.session import Base
from protocol_forum.db.time import UTCDateTime, utcnow
from protocol_forum.models.enums import VotableType, VoteType, sql_in

VOTE_UNIQUE_COLUMNS = ("user_id", "votable_type", "votable_id")


class Vote(Base):
    """Per-user vote on a thread, comment, reply or review.

    The target is polymorphic (``votable_type`` + ``votable_id``). Scores are
    never stored on the target; they are aggregated from these rows on read.
    """

    __tablename__ = "votes"
    __table_args__ = (
        # One vote per (user, target); upserts conflict on this constraint.
        UniqueConstraint(*VOTE_UNIQUE_COLUMNS, name="uq_votes_user_votable"),
        CheckConstraint(f"type IN {sql_in(VoteType)}", name="ck_votes_type"),
        CheckConstraint(
            f"votable_type IN {sql_in(VotableType)}",
            name="ck_votes_votable_type",
        ),
        Index("ix_votes_votable", "votable_type", "votable_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    votable_type: Mapped[str] = mapped_column(String(16), nullable=False)
    votable_id: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
