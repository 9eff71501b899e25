# src/protocol_forum/scripts/cleanup_offline.py
"""
Cron job that marks inactive users offline.

Equivalent to one pass of the in-process presence sweep; use it when
PRESENCE_SWEEP_ENABLED is off and the sweep is scheduled externally, e.g.:

    */15 * * * * python -m protocol_forum.scripts.cleanup_offline
"""
from __future__ import annotations

import argparse

from protocol_forum.core.settings import settings
from protocol_forum.db.session import SessionLocal
from protocol_forum.services.presence import get_presence_tracker


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Mark inactive users as offline")
    parser.add_argument(
        "--threshold-minutes",
        type=int,
        default=settings.presence_offline_threshold_minutes,
        help="Minutes without activity before a user is considered offline.",
    )
    args = parser.parse_args(argv)

    tracker = get_presence_tracker()
    db = SessionLocal()
    try:
        user_ids = tracker.cleanup_offline(db, args.threshold_minutes)
    finally:
        db.close()

    print(f"Marked {len(user_ids)} users as offline")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
