"""Database engine, sessions and time helpers."""

from .session import Base, SessionLocal, get_db, session_scope
from .time import as_utc, utcnow

__all__ = ["Base", "SessionLocal", "as_utc", "get_db", "session_scope", "utcnow"]
