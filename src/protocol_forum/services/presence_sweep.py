"""Background loop that periodically marks inactive users offline.

Started from the application's startup hook when ``PRESENCE_SWEEP_ENABLED``
is set. Deployments that prefer cron run ``scripts/cleanup_offline.py``
instead.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from sqlalchemy.orm import Session

from protocol_forum.core.settings import settings
from protocol_forum.db.session import SessionLocal
from protocol_forum.services.presence import PresenceTracker, get_presence_tracker

logger = logging.getLogger(__name__)


class PresenceSweepWorker:
    """Runs :meth:`PresenceTracker.cleanup_offline` on a fixed interval."""

    def __init__(
        self,
        tracker: PresenceTracker | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: float | None = None,
        threshold_minutes: int | None = None,
    ) -> None:
        self.tracker = tracker or get_presence_tracker()
        self._session_factory = session_factory
        self.interval_seconds = max(
            1.0,
            float(interval_seconds or settings.presence_sweep_interval_seconds),
        )
        self.threshold_minutes = threshold_minutes or settings.presence_offline_threshold_minutes
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        """Start the background sweep loop."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the loop and wait for an in-flight sweep to finish."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    def sweep_once(self) -> list[int]:
        """Run a single sweep in a fresh session and return affected user ids."""
        with self._session_factory() as db:
            user_ids = self.tracker.cleanup_offline(db, self.threshold_minutes)
        purged = self.tracker.cache.purge_expired()
        logger.debug(
            "Presence sweep marked %d users offline, purged %d cache entries",
            len(user_ids),
            purged,
        )
        return user_ids

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.to_thread(self.sweep_once)
            except Exception:
                logger.exception("Presence sweep failed")

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
