"""Channel authorization schemas."""
from __future__ import annotations

from pydantic import BaseModel, Field


class ChannelAuthRequest(BaseModel):
    """Body of ``POST /broadcasting/auth``."""

    channel_name: str = Field(..., min_length=1, max_length=255)


class ChannelAuthResponse(BaseModel):
    authorized: bool
    channel_name: str
