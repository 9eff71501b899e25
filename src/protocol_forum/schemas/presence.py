"""Presence-related Pydantic schemas."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

StatusLiteral = Literal["online", "offline", "away", "busy"]


class StatusUpdate(BaseModel):
    """Body of ``POST /users/status``."""

    status: StatusLiteral


class PresenceOut(BaseModel):
    """A user's current presence."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int
    name: str
    status: StatusLiteral
    is_online: bool
    last_seen_at: datetime | None = None


class OnlineUsersOut(BaseModel):
    online_users: list[PresenceOut]
    count: int
    chat_room_id: int | None = None
