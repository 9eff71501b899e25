# src/protocol_forum/api/v1/endpoints/votes.py
"""Vote-related endpoints for the Protocol Forum API."""

from typing import NoReturn

from fastapi import APIRouter, HTTPException, status
from sqlalchemy.orm import Session

from protocol_forum.models import Vote
from protocol_forum.schemas.vote import (
    MyVoteOut,
    ScoreOut,
    VotableTypeLiteral,
    VoteCreate,
    VoteOut,
    VoteResult,
    VoteTarget,
)
from protocol_forum.services import votes as vote_store
from protocol_forum.services.scores import score_for

from ..dependencies import ActiveUserDep, SessionDep

router = APIRouter(prefix="/votes", tags=["votes"])


def _score_out(db: Session, votable_type: str, votable_id: int) -> ScoreOut:
    score = score_for(db, votable_type, votable_id)
    return ScoreOut(votable_type=votable_type, votable_id=votable_id, **score.as_dict())


def _vote_out(vote: Vote | None) -> VoteOut | None:
    return VoteOut.model_validate(vote) if vote is not None else None


def _raise_for_vote_error(err: Exception) -> NoReturn:
    if isinstance(err, vote_store.VoteTargetNotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err)) from err
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=str(err),
    ) from err


@router.post("", status_code=status.HTTP_200_OK)
def cast_vote(vote_data: VoteCreate, current_user: ActiveUserDep, db: SessionDep) -> VoteResult:
    """Cast or change the caller's vote on a thread, comment, reply or review."""
    existing = vote_store.get_user_vote(
        db, current_user.id, vote_data.votable_type, vote_data.votable_id
    )
    try:
        vote = vote_store.cast_vote(
            db,
            current_user.id,
            vote_data.votable_type,
            vote_data.votable_id,
            vote_data.vote_type,
        )
    except (vote_store.VoteTargetNotFound, vote_store.InvalidVoteError) as err:
        _raise_for_vote_error(err)

    return VoteResult(
        action="updated" if existing is not None else "created",
        vote=_vote_out(vote),
        score=_score_out(db, vote_data.votable_type, vote_data.votable_id),
    )


@router.post("/toggle")
def toggle_vote(vote_data: VoteCreate, current_user: ActiveUserDep, db: SessionDep) -> VoteResult:
    """Vote, switch direction, or withdraw the vote when repeating the same direction."""
    try:
        outcome = vote_store.toggle_vote(
            db,
            current_user.id,
            vote_data.votable_type,
            vote_data.votable_id,
            vote_data.vote_type,
        )
    except (vote_store.VoteTargetNotFound, vote_store.InvalidVoteError) as err:
        _raise_for_vote_error(err)

    return VoteResult(
        action=outcome.action,
        vote=_vote_out(outcome.vote),
        score=_score_out(db, vote_data.votable_type, vote_data.votable_id),
    )


@router.delete("")
def remove_vote(target: VoteTarget, current_user: ActiveUserDep, db: SessionDep) -> VoteResult:
    """Withdraw the caller's vote; succeeds even if there was none."""
    vote_store.remove_vote(db, current_user.id, target.votable_type, target.votable_id)
    return VoteResult(
        action="removed",
        vote=None,
        score=_score_out(db, target.votable_type, target.votable_id),
    )


@router.get("/{votable_type}/{votable_id}/score")
def get_score(
    votable_type: VotableTypeLiteral,
    votable_id: int,
    current_user: ActiveUserDep,
    db: SessionDep,
) -> ScoreOut:
    """Return upvote/downvote counts and net score for a votable entity."""
    try:
        vote_store.ensure_target_exists(
            db, vote_store.parse_votable_type(votable_type), votable_id
        )
    except vote_store.VoteTargetNotFound as err:
        _raise_for_vote_error(err)
    return _score_out(db, votable_type, votable_id)


@router.get("/{votable_type}/{votable_id}/my-vote")
def get_my_vote(
    votable_type: VotableTypeLiteral,
    votable_id: int,
    current_user: ActiveUserDep,
    db: SessionDep,
) -> MyVoteOut:
    """Get the current user's vote on a specific entity."""
    vote = vote_store.get_user_vote(db, current_user.id, votable_type, votable_id)
    if vote is None:
        return MyVoteOut(vote_type=None)
    return MyVoteOut(vote_type=vote.type)
