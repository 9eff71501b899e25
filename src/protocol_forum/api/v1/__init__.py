# src/protocol_forum/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    broadcasting_router,
    chat_rooms_router,
    users_router,
    votes_router,
)

__all__ = [
    "votes_router",
    "users_router",
    "chat_rooms_router",
    "broadcasting_router",
]
