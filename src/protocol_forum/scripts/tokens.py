# src/protocol_forum/scripts/tokens.py
"""Mint a bearer token for an existing user.

Handy for curl sessions and WebSocket clients while developing locally:

    python -m protocol_forum.scripts.tokens 1
"""
from __future__ import annotations

import argparse
import sys

from protocol_forum.core.security import create_access_token
from protocol_forum.db.session import SessionLocal
from protocol_forum.models import User


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a JWT access token for a user")
    parser.add_argument("user_id", type=int, help="Id of the user the token identifies.")
    parser.add_argument(
        "--skip-check",
        action="store_true",
        help="Do not verify that the user exists.",
    )
    args = parser.parse_args(argv)

    if not args.skip_check:
        with SessionLocal() as db:
            if db.get(User, args.user_id) is None:
                print(f"[tokens] ERROR: user {args.user_id} does not exist", file=sys.stderr)
                return 1

    print(create_access_token(args.user_id))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
