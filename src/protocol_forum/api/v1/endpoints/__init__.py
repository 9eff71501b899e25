# src/protocol_forum/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .broadcasting import router as broadcasting_router
from .chat_rooms import router as chat_rooms_router
from .users import router as users_router
from .votes import router as votes_router

__all__ = [
    "votes_router",
    "users_router",
    "chat_rooms_router",
    "broadcasting_router",
]
