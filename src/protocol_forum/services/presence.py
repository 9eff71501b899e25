"""Presence tracking: online/offline/away/busy state with throttled writes.

State lives on the ``users`` row and is mutated from three paths: request
activity (throttled through :class:`ActivityThrottleCache`), explicit status
changes, and the periodic offline sweep. Writers do not lock; the last write
wins, which is acceptable for advisory presence data.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from protocol_forum.core.settings import settings
from protocol_forum.db.time import utcnow
from protocol_forum.models import ChatRoomMember, User, UserStatus
from protocol_forum.services.activity_cache import ActivityThrottleCache, get_activity_cache
from protocol_forum.services.broadcast import BroadcastFanout, get_fanout

logger = logging.getLogger(__name__)


class InvalidStatusError(ValueError):
    """Raised when a status outside online/offline/away/busy is requested."""


class UserNotFound(LookupError):
    """Raised when presence is requested for a user that does not exist."""


def parse_status(value: str | UserStatus) -> UserStatus:
    """Return ``value`` as a :class:`UserStatus` or raise InvalidStatusError."""
    try:
        return UserStatus(value)
    except ValueError as err:
        raise InvalidStatusError(f"Invalid status: {value!r}") from err


class PresenceTracker:
    """Maintains per-user presence and announces every change.

    Args:
        cache: Throttle cache deciding whether request activity is written.
        fanout: Broadcast fanout used after each committed change.
        clock: Source of "now"; injectable so tests can move time.
    """

    def __init__(
        self,
        cache: ActivityThrottleCache,
        fanout: BroadcastFanout,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.cache = cache
        self.fanout = fanout
        self._clock = clock

    def _get_user(self, db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user

    def _announce(self, db: Session, user: User) -> None:
        self.fanout.publish_presence_change(
            db,
            user.id,
            user.status,
            user.is_online,
            user.last_seen_at,
        )

    def record_activity(self, db: Session, user_id: int) -> bool:
        """Mark the user online after request activity, at most once per window.

        Returns:
            True if presence was written, False if the call was throttled.
        """
        if self.cache.should_throttle(user_id):
            return False

        user = self._get_user(db, user_id)
        try:
            user.status = UserStatus.ONLINE.value
            user.is_online = True
            user.last_seen_at = self._clock()
            db.commit()
        except SQLAlchemyError:
            # A failed write must not hold the throttle window open.
            self.cache.forget(user_id)
            raise

        self._announce(db, user)
        return True

    def set_status(self, db: Session, user_id: int, status: str | UserStatus) -> User:
        """Set an explicit status; ``is_online`` follows ``status != offline``.

        Raises:
            InvalidStatusError: If ``status`` is not a known value. Nothing is written.
            UserNotFound: If the user does not exist.
        """
        new_status = parse_status(status)
        user = self._get_user(db, user_id)

        user.status = new_status.value
        user.is_online = new_status.is_online
        user.last_seen_at = self._clock()
        db.commit()

        if not new_status.is_online:
            # Next request from this user should flip them back online.
            self.cache.forget(user_id)

        self._announce(db, user)
        return user

    def cleanup_offline(self, db: Session, threshold_minutes: int | None = None) -> list[int]:
        """Mark users offline whose last activity is older than the threshold.

        Returns:
            Ids of the users transitioned to offline.
        """
        if threshold_minutes is None:
            threshold_minutes = settings.presence_offline_threshold_minutes
        cutoff = self._clock() - timedelta(minutes=threshold_minutes)

        stale_users = db.scalars(
            select(User)
            .where(
                User.is_online.is_(True),
                or_(User.last_seen_at.is_(None), User.last_seen_at < cutoff),
            )
            .order_by(User.id)
        ).all()
        if not stale_users:
            return []

        for user in stale_users:
            user.status = UserStatus.OFFLINE.value
            user.is_online = False
        db.commit()

        for user in stale_users:
            logger.info("Marked user %s as offline due to inactivity", user.id)
            self._announce(db, user)
        return [user.id for user in stale_users]

    # --- Read path ------------------------------------------------------------------
    def get_presence(self, db: Session, user_id: int) -> User:
        """Return the user row carrying current presence fields."""
        return self._get_user(db, user_id)

    def online_users(self, db: Session) -> list[User]:
        """Return every user currently online (including away and busy)."""
        return list(
            db.scalars(select(User).where(User.is_online.is_(True)).order_by(User.name, User.id))
        )

    def online_users_for_chat_room(self, db: Session, chat_room_id: int) -> list[User]:
        """Return online users holding an active membership in the room."""
        return list(
            db.scalars(
                select(User)
                .join(ChatRoomMember, ChatRoomMember.user_id == User.id)
                .where(
                    ChatRoomMember.chat_room_id == chat_room_id,
                    ChatRoomMember.is_active.is_(True),
                    User.is_online.is_(True),
                )
                .order_by(User.name, User.id)
            )
        )


def get_presence_tracker() -> PresenceTracker:
    """Return a presence tracker wired to the process-wide cache and transport."""
    return PresenceTracker(get_activity_cache(), get_fanout())
