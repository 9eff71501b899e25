"""Database engine, sessions and column types."""

from .session import Base, SessionLocal, get_db
from .time import UTCDateTime, utcnow

__all__ = ["Base", "SessionLocal", "get_db", "UTCDateTime", "utcnow"]
