"""String enumerations persisted in model columns."""

from __future__ import annotations

from enum import Enum


class VoteType(str, Enum):
    """Direction of a vote."""

    UPVOTE = "upvote"
    DOWNVOTE = "downvote"

    @property
    def weight(self) -> int:
        """Return the score contribution of the vote (+1 or -1)."""
        return 1 if self is VoteType.UPVOTE else -1


class VotableType(str, Enum):
    """Kinds of content that can receive votes."""

    THREAD = "thread"
    COMMENT = "comment"
    REPLY = "reply"
    REVIEW = "review"


class UserStatus(str, Enum):
    """Presence status shown to other users."""

    ONLINE = "online"
    OFFLINE = "offline"
    AWAY = "away"
    BUSY = "busy"

    @property
    def is_online(self) -> bool:
        """Every status except offline counts as online."""
        return self is not UserStatus.OFFLINE


class ChatRoomType(str, Enum):
    PRIVATE = "private"
    GROUP = "group"


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


def sql_in(enum_cls: type[Enum]) -> str:
    """Render an enum's values as a SQL ``IN`` list for check constraints."""
    return "(" + ", ".join(f"'{member.value}'" for member in enum_cls) + ")"
