# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta
from itertools import count
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from protocol_forum.api.v1.dependencies import get_fanout_dep, get_presence_tracker_dep
from protocol_forum.core.security import create_access_token
from protocol_forum.db.session import Base
from protocol_forum.db.session import get_db as app_get_session
from protocol_forum.main import app as fastapi_app
from protocol_forum.models import ChatRoom, Comment, Protocol, Reply, Review, Thread, User
from protocol_forum.services.activity_cache import ActivityThrottleCache
from protocol_forum.services.broadcast import BroadcastEvent, BroadcastFanout, InMemoryTransport
from protocol_forum.services.chat import create_chat_room
from protocol_forum.services.presence import PresenceTracker

TEST_DB_URL = "sqlite://"

_EMAIL_COUNTER = count(1)


class FakeClock:
    """Controllable time source for both wall-clock and monotonic readings."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
        self.ticks = 1_000.0

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.ticks

    def advance(self, **delta: float) -> None:
        step = timedelta(**delta)
        self.current += step
        self.ticks += step.total_seconds()


class RecordingTransport(InMemoryTransport):
    """In-memory transport that also remembers everything sent through it."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[BroadcastEvent] = []

    def send(self, event: BroadcastEvent) -> None:
        self.events.append(event)
        super().send(event)

    def channels(self) -> list[str]:
        return [event.channel for event in self.events]

    def events_for(self, channel: str) -> list[BroadcastEvent]:
        return [event for event in self.events if event.channel == channel]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def fanout(transport: RecordingTransport) -> BroadcastFanout:
    return BroadcastFanout(transport)


@pytest.fixture()
def activity_cache(clock: FakeClock) -> ActivityThrottleCache:
    return ActivityThrottleCache(60, clock=clock.monotonic)


@pytest.fixture()
def presence(
    activity_cache: ActivityThrottleCache,
    fanout: BroadcastFanout,
    clock: FakeClock,
) -> PresenceTracker:
    return PresenceTracker(activity_cache, fanout, clock=clock.now)


@pytest.fixture(autouse=True)
def override_service_dependencies(
    app: FastAPI,
    fanout: BroadcastFanout,
    presence: PresenceTracker,
) -> Iterator[None]:
    """Route API handlers to the in-memory fanout and the fake-clock tracker."""
    overrides: dict[Callable[..., Any], Callable[[], Any]] = {
        get_fanout_dep: lambda: fanout,
        get_presence_tracker_dep: lambda: presence,
    }
    for dependency, override in overrides.items():
        app.dependency_overrides[dependency] = override

    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory that persists users with unique emails."""

    def _make_user(name: str = "Test User", **fields: Any) -> User:
        user = User(name=name, email=f"user{next(_EMAIL_COUNTER)}@example.com", **fields)
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture()
def test_user(make_user: Callable[..., User]) -> User:
    """Create and return a persisted test user."""
    return make_user("Test User")


@pytest.fixture()
def other_user(make_user: Callable[..., User]) -> User:
    """Create and return a second persisted user."""
    return make_user("Other User")


def _auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def auth_headers_for() -> Callable[[User], dict[str, str]]:
    """Return a helper building bearer headers for any persisted user."""
    return _auth_headers


@pytest.fixture()
def auth_token(test_user: User) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    return _auth_headers(test_user)


@pytest.fixture()
def other_auth_token(other_user: User) -> dict[str, str]:
    """Return authorization headers for the secondary test user."""
    return _auth_headers(other_user)


@pytest.fixture()
def protocol(db_session: Session, test_user: User) -> Protocol:
    protocol = Protocol(
        title="Cold exposure",
        description="Two minutes daily",
        author_id=test_user.id,
    )
    db_session.add(protocol)
    db_session.commit()
    return protocol


@pytest.fixture()
def thread(db_session: Session, protocol: Protocol, test_user: User) -> Thread:
    thread = Thread(
        protocol_id=protocol.id,
        author_id=test_user.id,
        title="Results after a month",
        body="Sleep improved noticeably.",
    )
    db_session.add(thread)
    db_session.commit()
    return thread


@pytest.fixture()
def comment(db_session: Session, thread: Thread, other_user: User) -> Comment:
    comment = Comment(thread_id=thread.id, author_id=other_user.id, body="Same here.")
    db_session.add(comment)
    db_session.commit()
    return comment


@pytest.fixture()
def reply(db_session: Session, comment: Comment, test_user: User) -> Reply:
    reply = Reply(comment_id=comment.id, author_id=test_user.id, body="Glad to hear it.")
    db_session.add(reply)
    db_session.commit()
    return reply


@pytest.fixture()
def review(db_session: Session, protocol: Protocol, other_user: User) -> Review:
    review = Review(protocol_id=protocol.id, author_id=other_user.id, rating=4, body="Works.")
    db_session.add(review)
    db_session.commit()
    return review


@pytest.fixture()
def chat_room(db_session: Session, test_user: User, other_user: User) -> ChatRoom:
    """Group room administered by ``test_user`` with ``other_user`` as member."""
    return create_chat_room(
        db_session,
        test_user.id,
        "Morning routine",
        room_type="group",
        user_ids=[other_user.id],
    )
