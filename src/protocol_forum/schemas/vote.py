"""Vote-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

VotableTypeLiteral = Literal["thread", "comment", "reply", "review"]
VoteTypeLiteral = Literal["upvote", "downvote"]


class VoteTarget(BaseModel):
    """Identifies a votable entity."""

    votable_id: int = Field(..., gt=0)
    votable_type: VotableTypeLiteral


class VoteCreate(VoteTarget):
    """Schema for casting a vote."""

    vote_type: VoteTypeLiteral = Field(..., description="upvote or downvote")


class VoteOut(BaseModel):
    """Stored vote as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    votable_type: VotableTypeLiteral
    votable_id: int
    vote_type: VoteTypeLiteral = Field(validation_alias="type")
    created_at: datetime
    updated_at: datetime


class ScoreOut(BaseModel):
    """Aggregated counts for a votable entity."""

    votable_type: VotableTypeLiteral
    votable_id: int
    upvotes: int
    downvotes: int
    score: int


class VoteResult(BaseModel):
    """Response to a vote mutation: what happened, the vote, and the new score."""

    action: Literal["created", "updated", "removed"]
    vote: VoteOut | None = None
    score: ScoreOut


class MyVoteOut(BaseModel):
    vote_type: VoteTypeLiteral | None = None
