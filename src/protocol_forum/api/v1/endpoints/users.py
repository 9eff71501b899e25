# src/protocol_forum/api/v1/endpoints/users.py
"""Presence endpoints: status updates and online-user queries."""

from fastapi import APIRouter, HTTPException, status

from protocol_forum.models import User
from protocol_forum.schemas.presence import OnlineUsersOut, PresenceOut, StatusUpdate
from protocol_forum.services.presence import InvalidStatusError, UserNotFound

from ..dependencies import ActiveUserDep, PresenceDep, SessionDep

router = APIRouter(prefix="/users", tags=["users", "presence"])


def to_presence_out(user: User) -> PresenceOut:
    """Convert a User row to its presence schema."""
    return PresenceOut(
        user_id=user.id,
        name=user.name,
        status=user.status,
        is_online=user.is_online,
        last_seen_at=user.last_seen_at,
    )


@router.post("/status")
def set_status(
    body: StatusUpdate,
    current_user: ActiveUserDep,
    db: SessionDep,
    presence: PresenceDep,
) -> PresenceOut:
    """Set the caller's status to online, offline, away or busy."""
    try:
        user = presence.set_status(db, current_user.id, body.status)
    except InvalidStatusError as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(err),
        ) from err
    return to_presence_out(user)


@router.get("/status")
def get_my_status(current_user: ActiveUserDep, db: SessionDep) -> PresenceOut:
    """Return the caller's own presence."""
    db.refresh(current_user)
    return to_presence_out(current_user)


@router.get("/online")
def get_online_users(
    current_user: ActiveUserDep,
    db: SessionDep,
    presence: PresenceDep,
) -> OnlineUsersOut:
    """List every user currently online, away or busy."""
    users = presence.online_users(db)
    return OnlineUsersOut(online_users=[to_presence_out(u) for u in users], count=len(users))


@router.get("/{user_id}/status")
def get_user_status(
    user_id: int,
    current_user: ActiveUserDep,
    db: SessionDep,
    presence: PresenceDep,
) -> PresenceOut:
    """Return another user's presence."""
    try:
        user = presence.get_presence(db, user_id)
    except UserNotFound as err:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err)) from err
    return to_presence_out(user)
