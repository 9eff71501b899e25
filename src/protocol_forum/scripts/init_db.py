# src/protocol_forum/scripts/init_db.py
"""Create all tables and optionally load a small sample dataset."""
from __future__ import annotations

import argparse

from sqlalchemy import select
from sqlalchemy.orm import Session

from protocol_forum.db.session import SessionLocal, create_tables
from protocol_forum.models import Comment, Protocol, Reply, Review, Thread, User
from protocol_forum.services.chat import create_chat_room, send_message

SAMPLE_USERS = [
    ("Ada Lovelace", "ada@example.com"),
    ("Grace Hopper", "grace@example.com"),
    ("Alan Turing", "alan@example.com"),
]


def seed(db: Session) -> None:
    """Insert sample users, one protocol with discussion, and a chat room."""
    if db.scalar(select(User.id).limit(1)) is not None:
        print("Database already has users; skipping seed")
        return

    users = [User(name=name, email=email) for name, email in SAMPLE_USERS]
    db.add_all(users)
    db.flush()
    ada, grace, alan = users

    protocol = Protocol(
        title="Morning sunlight",
        description="Ten minutes of outdoor light within an hour of waking.",
        author_id=ada.id,
    )
    db.add(protocol)
    db.flush()

    thread = Thread(
        protocol_id=protocol.id,
        author_id=grace.id,
        title="Cloudy days?",
        body="Does overcast light still count?",
    )
    db.add(thread)
    db.flush()
    comment = Comment(
        thread_id=thread.id,
        author_id=alan.id,
        body="Yes, it is still far brighter than indoor light.",
    )
    db.add(comment)
    db.flush()
    db.add(Reply(comment_id=comment.id, author_id=grace.id, body="Good to know, thanks."))
    db.add(
        Review(protocol_id=protocol.id, author_id=alan.id, rating=5, body="Easy to stick with.")
    )
    db.commit()

    room = create_chat_room(
        db, ada.id, "Sunlight club", room_type="group", user_ids=[grace.id, alan.id]
    )
    send_message(db, room.id, ada.id, "Welcome! Share how your week went.")
    print(f"Seeded {len(users)} users, protocol {protocol.id} and chat room {room.id}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Initialize the Protocol Forum database")
    parser.add_argument(
        "--seed", action="store_true", help="Load sample data after creating tables."
    )
    args = parser.parse_args(argv)

    create_tables()
    print("Database initialized.")
    if args.seed:
        with SessionLocal() as db:
            seed(db)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
