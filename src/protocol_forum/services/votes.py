"""Vote store: one vote per (user, votable entity) with atomic upserts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql.dml import Insert

from protocol_forum.db.time import utcnow
from protocol_forum.db.upsert import upsert_statement
from protocol_forum.models import VOTABLE_MODELS, VotableType, Vote, VoteType
from protocol_forum.models.vote import VOTE_UNIQUE_COLUMNS

logger = logging.getLogger(__name__)

__all__ = [
    "InvalidVoteError",
    "VoteTargetNotFound",
    "VoteOutcome",
    "parse_votable_type",
    "parse_vote_type",
    "ensure_target_exists",
    "cast_vote",
    "remove_vote",
    "toggle_vote",
    "get_user_vote",
]


class InvalidVoteError(ValueError):
    """Raised when a vote names an unknown direction or votable type."""


class VoteTargetNotFound(LookupError):
    """Raised when the votable entity does not exist."""


@dataclass(frozen=True)
class VoteOutcome:
    """Result of a toggle: what happened and the vote left behind, if any."""

    action: Literal["created", "updated", "removed"]
    vote: Vote | None


def parse_votable_type(value: str | VotableType) -> VotableType:
    """Return ``value`` as a :class:`VotableType` or raise InvalidVoteError."""
    try:
        return VotableType(value)
    except ValueError as err:
        raise InvalidVoteError(f"Unsupported votable type: {value!r}") from err


def parse_vote_type(value: str | VoteType) -> VoteType:
    """Return ``value`` as a :class:`VoteType` or raise InvalidVoteError."""
    try:
        return VoteType(value)
    except ValueError as err:
        raise InvalidVoteError(f"Unsupported vote type: {value!r}") from err


def ensure_target_exists(db: Session, votable_type: VotableType, votable_id: int) -> None:
    """Raise VoteTargetNotFound unless the votable row exists."""
    model = VOTABLE_MODELS[votable_type]
    if db.get(model, votable_id) is None:
        raise VoteTargetNotFound(f"{votable_type.value.capitalize()} {votable_id} not found")


def _vote_filter(voter_id: int, votable_type: VotableType, votable_id: int):
    return (
        Vote.user_id == voter_id,
        Vote.votable_type == votable_type.value,
        Vote.votable_id == votable_id,
    )


def get_user_vote(
    db: Session,
    voter_id: int,
    votable_type: str | VotableType,
    votable_id: int,
) -> Vote | None:
    """Return the caller's vote on a target, or None if they have not voted."""
    target_type = parse_votable_type(votable_type)
    return db.scalars(
        select(Vote).where(*_vote_filter(voter_id, target_type, votable_id))
    ).first()


def _upsert_statement(dialect_name: str, values: dict[str, object]) -> Insert | None:
    return upsert_statement(
        dialect_name, Vote, values, VOTE_UNIQUE_COLUMNS, ("type", "updated_at")
    )


def _insert_or_overwrite(db: Session, values: dict[str, object]) -> None:
    """Insert inside a SAVEPOINT and overwrite the existing row on conflict.

    The unique constraint is the arbiter: a concurrent request that inserted
    first makes ours fail, and we treat that as "already voted".
    """
    try:
        with db.begin_nested():
            db.add(Vote(**values))
    except IntegrityError:
        logger.info(
            "Vote by user %s on %s %s already exists; overwriting direction",
            values["user_id"],
            values["votable_type"],
            values["votable_id"],
        )
        target_type = VotableType(values["votable_type"])
        db.execute(
            Vote.__table__.update()
            .where(*_vote_filter(int(values["user_id"]), target_type, int(values["votable_id"])))
            .values(type=values["type"], updated_at=values["updated_at"])
        )


def cast_vote(
    db: Session,
    voter_id: int,
    votable_type: str | VotableType,
    votable_id: int,
    vote_type: str | VoteType,
) -> Vote:
    """Create or overwrite the caller's vote on a target.

    Re-voting in either direction updates the existing row in place; the
    unique (user, target) constraint guarantees a single row even when two
    identical requests race.

    Raises:
        InvalidVoteError: If the direction or votable type is not recognised.
        VoteTargetNotFound: If the target entity does not exist.
    """
    target_type = parse_votable_type(votable_type)
    direction = parse_vote_type(vote_type)
    ensure_target_exists(db, target_type, votable_id)

    now = utcnow()
    values: dict[str, object] = {
        "user_id": voter_id,
        "votable_type": target_type.value,
        "votable_id": votable_id,
        "type": direction.value,
        "created_at": now,
        "updated_at": now,
    }

    stmt = _upsert_statement(db.get_bind().dialect.name, values)
    if stmt is not None:
        db.execute(stmt)
    else:
        _insert_or_overwrite(db, values)
    db.commit()

    vote = db.scalars(
        select(Vote)
        .where(*_vote_filter(voter_id, target_type, votable_id))
        .execution_options(populate_existing=True)
    ).one()
    return vote


def remove_vote(
    db: Session,
    voter_id: int,
    votable_type: str | VotableType,
    votable_id: int,
) -> bool:
    """Delete the caller's vote on a target.

    Idempotent: returns False instead of raising when there was nothing to delete.
    """
    target_type = parse_votable_type(votable_type)
    result = db.execute(
        delete(Vote)
        .where(*_vote_filter(voter_id, target_type, votable_id))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return bool(result.rowcount)


def toggle_vote(
    db: Session,
    voter_id: int,
    votable_type: str | VotableType,
    votable_id: int,
    vote_type: str | VoteType,
) -> VoteOutcome:
    """Vote, switch direction, or withdraw when repeating the same direction."""
    target_type = parse_votable_type(votable_type)
    direction = parse_vote_type(vote_type)
    ensure_target_exists(db, target_type, votable_id)

    existing = get_user_vote(db, voter_id, target_type, votable_id)
    if existing is not None and existing.type == direction.value:
        remove_vote(db, voter_id, target_type, votable_id)
        return VoteOutcome(action="removed", vote=None)

    vote = cast_vote(db, voter_id, target_type, votable_id, direction)
    return VoteOutcome(action="updated" if existing is not None else "created", vote=vote)
