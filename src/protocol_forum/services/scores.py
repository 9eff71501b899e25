"""Score aggregation over stored votes."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from protocol_forum.models import VotableType, Vote, VoteType
from protocol_forum.services.votes import parse_votable_type


@dataclass(frozen=True)
class VoteScore:
    """Up/down counts for one votable entity and their net score."""

    upvotes: int = 0
    downvotes: int = 0
    score: int = 0

    @classmethod
    def from_counts(cls, upvotes: int, downvotes: int) -> VoteScore:
        return cls(upvotes=upvotes, downvotes=downvotes, score=upvotes - downvotes)

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def score_for(db: Session, votable_type: str | VotableType, votable_id: int) -> VoteScore:
    """Count votes on one target grouped by direction.

    A target with no votes scores zero, never None.
    """
    target_type = parse_votable_type(votable_type)
    rows = db.execute(
        select(Vote.type, func.count(Vote.id))
        .where(Vote.votable_type == target_type.value, Vote.votable_id == votable_id)
        .group_by(Vote.type)
    ).all()
    counts = {vote_type: int(count) for vote_type, count in rows}
    return VoteScore.from_counts(
        counts.get(VoteType.UPVOTE.value, 0),
        counts.get(VoteType.DOWNVOTE.value, 0),
    )


def scores_for(
    db: Session,
    votable_type: str | VotableType,
    votable_ids: Iterable[int],
) -> dict[int, VoteScore]:
    """Batch variant of :func:`score_for` for rendering lists of content."""
    target_type = parse_votable_type(votable_type)
    ids = sorted(set(votable_ids))
    if not ids:
        return {}

    rows = db.execute(
        select(Vote.votable_id, Vote.type, func.count(Vote.id))
        .where(Vote.votable_type == target_type.value, Vote.votable_id.in_(ids))
        .group_by(Vote.votable_id, Vote.type)
    ).all()

    counts: dict[int, dict[str, int]] = {votable_id: {} for votable_id in ids}
    for votable_id, vote_type, count in rows:
        counts[votable_id][vote_type] = int(count)

    return {
        votable_id: VoteScore.from_counts(
            by_type.get(VoteType.UPVOTE.value, 0),
            by_type.get(VoteType.DOWNVOTE.value, 0),
        )
        for votable_id, by_type in counts.items()
    }
