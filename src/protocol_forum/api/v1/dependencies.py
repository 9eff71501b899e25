"""Shared API dependencies for authentication and core services."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from protocol_forum.core.security import decode_access_token
from protocol_forum.db.session import get_db
from protocol_forum.models import User
from protocol_forum.services.broadcast import BroadcastFanout, get_fanout
from protocol_forum.services.presence import PresenceTracker, get_presence_tracker

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_fanout_dep() -> BroadcastFanout:
    """Return the shared broadcast fanout."""
    return get_fanout()


def get_presence_tracker_dep() -> PresenceTracker:
    """Return the shared presence tracker."""
    return get_presence_tracker()


FanoutDep = Annotated[BroadcastFanout, Depends(get_fanout_dep)]
PresenceDep = Annotated[PresenceTracker, Depends(get_presence_tracker_dep)]


def resolve_token_user(token: str, db: Session) -> User:
    """Return the user identified by a bearer token.

    Raises:
        HTTPException: 401 if the token is invalid or the user does not exist.
    """
    try:
        user_id = decode_access_token(token)
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from the JWT bearer token."""
    return resolve_token_user(credentials.credentials, db)


def get_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
    db: SessionDep,
    presence: PresenceDep,
) -> User:
    """Authenticate and record request activity for presence tracking.

    The write is throttled, so most requests only touch the activity cache.
    """
    presence.record_activity(db, current_user.id)
    return current_user


# Type aliases for current user dependencies
CurrentUserDep = Annotated[User, Depends(get_current_user)]
ActiveUserDep = Annotated[User, Depends(get_active_user)]
