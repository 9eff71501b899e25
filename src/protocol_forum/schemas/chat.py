"""Chat room Pydantic schemas."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatRoomCreate(BaseModel):
    """Schema for creating a chat room."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    type: Literal["private", "group"] = "private"
    user_ids: list[int] = Field(default_factory=list)


class MembersAdd(BaseModel):
    user_ids: list[int] = Field(..., min_length=1)


class MessageCreate(BaseModel):
    """Schema for sending a message to a chat room."""

    message: str = Field(..., min_length=1, max_length=5000)
    message_type: Literal["text", "image", "file"] = "text"


class ChatRoomOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    type: str
    creator_id: int
    created_at: datetime
    updated_at: datetime
    member_ids: list[int] = Field(default_factory=list)


class ChatMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_room_id: int
    sender_id: int
    message: str
    message_type: str
    created_at: datetime


class VisitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    chat_room_id: int
    user_id: int
    last_visited_at: datetime
