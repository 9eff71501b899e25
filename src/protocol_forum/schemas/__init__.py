"""Pydantic schemas for request/response validation."""

from .broadcasting import ChannelAuthRequest, ChannelAuthResponse
from .chat import ChatMessageOut, ChatRoomCreate, ChatRoomOut, MembersAdd, MessageCreate, VisitOut
from .presence import OnlineUsersOut, PresenceOut, StatusUpdate
from .vote import MyVoteOut, ScoreOut, VoteCreate, VoteOut, VoteResult, VoteTarget

__all__ = [
    "ChannelAuthRequest",
    "ChannelAuthResponse",
    "ChatMessageOut",
    "ChatRoomCreate",
    "ChatRoomOut",
    "MembersAdd",
    "MessageCreate",
    "VisitOut",
    "OnlineUsersOut",
    "PresenceOut",
    "StatusUpdate",
    "MyVoteOut",
    "ScoreOut",
    "VoteCreate",
    "VoteOut",
    "VoteResult",
    "VoteTarget",
]
