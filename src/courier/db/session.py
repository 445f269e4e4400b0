"""Engine and session factory for the message store."""

from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from courier.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Import models so Base.metadata is complete for Alembic and test fixtures.
import courier.models  # noqa: E402,F401


def build_engine(url: str) -> Engine:
    """Create an engine for ``url``.

    SQLite connections are shared across worker threads (appends run off the
    event loop) and wait on the write lock instead of failing immediately.
    Statements are bounded by ``APPEND_TIMEOUT_SECONDS`` so a write its caller
    gave up on is aborted by the database rather than committed later.
    """
    timeout_ms = int(settings.append_timeout_seconds * 1000)
    is_sqlite = url.startswith("sqlite")
    connect_args: dict[str, object] = {}
    if is_sqlite:
        connect_args["check_same_thread"] = False
    elif url.startswith("postgresql"):
        connect_args["options"] = f"-c statement_timeout={timeout_ms}"
    db_engine = create_engine(
        url,
        pool_pre_ping=True,
        echo=settings.sql_debug,
        connect_args=connect_args,
    )
    if is_sqlite:

        @event.listens_for(db_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _record) -> None:  # pragma: no cover - driver hook
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={timeout_ms}")
            cursor.close()

    return db_engine


engine = build_engine(settings.effective_database_url)

# Messages are handed to the event loop after commit; keep their attributes loaded.
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for scripts and background jobs; closed on exit."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
