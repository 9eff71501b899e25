# src/protocol_forum/models/__init__.py
"""SQLAlchemy models for the Protocol Forum application."""

from .chat import ChatMessage, ChatRoom, ChatRoomMember, ChatRoomVisit
from .content import Comment, Protocol, Reply, Review, Thread
from .enums import ChatRoomType, MemberRole, UserStatus, VotableType, VoteType
from .user import User
from .vote import Vote

# Maps each votable type to the model whose rows it may reference.
VOTABLE_MODELS: dict[VotableType, type] = {
    VotableType.THREAD: Thread,
    VotableType.COMMENT: Comment,
    VotableType.REPLY: Reply,
    VotableType.REVIEW: Review,
}

__all__ = [
    "ChatMessage", "ChatRoom", "ChatRoomMember", "ChatRoomVisit",
    "Comment", "Protocol", "Reply", "Review", "Thread",
    "ChatRoomType", "MemberRole", "UserStatus", "VotableType", "VoteType",
    "User",
    "Vote",
    "VOTABLE_MODELS",
]
