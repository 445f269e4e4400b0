# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "courier-test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from courier.core.security import create_access_token
from courier.core.settings import Settings
from courier.db.session import Base
from courier.db.session import get_db as app_get_session
from courier.main import app as fastapi_app
from courier.models import User
from courier.services.registry import ConnectionRegistry
from courier.services.relay import RelayGateway, get_relay_gateway

TEST_DB_URL = "sqlite://"

_TEST_SETTINGS_INSTANCE = Settings()


@pytest.fixture(scope="session")
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
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


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
def gateway(app: FastAPI) -> Iterator[RelayGateway]:
    """Install a fresh gateway with short timeouts for the duration of a test."""
    relay_gateway = RelayGateway(
        ConnectionRegistry(stripes=8),
        auth_timeout=0.5,
        append_timeout=2.0,
        delivery_timeout=1.0,
        echo_to_sender=True,
    )
    app.dependency_overrides[get_relay_gateway] = lambda: relay_gateway
    try:
        yield relay_gateway
    finally:
        app.dependency_overrides.pop(get_relay_gateway, None)
        relay_gateway.registry.clear()


@pytest.fixture()
def client(app: FastAPI, gateway: RelayGateway) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Provide a Settings instance aligned with runtime configuration."""
    return _TEST_SETTINGS_INSTANCE


@pytest.fixture()
def alice(db_session: Session) -> User:
    """Persisted profile for the primary test user."""
    user = User(user_id="alice", display_name="Alice Archer", avatar_url="/avatars/alice.png")
    db_session.add(user)
    db_session.flush()
    return user


@pytest.fixture()
def bob(db_session: Session) -> User:
    """Persisted profile for the secondary test user."""
    user = User(user_id="bob", display_name="Bob Baker", avatar_url=None)
    db_session.add(user)
    db_session.flush()
    return user


def _auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture()
def make_auth_headers():
    """Return a factory of authorization headers for any user id."""
    return _auth_headers


@pytest.fixture()
def auth_token() -> dict[str, str]:
    """Return authorization headers for ``alice``."""
    return _auth_headers("alice")


@pytest.fixture()
def other_auth_token() -> dict[str, str]:
    """Return authorization headers for ``bob``."""
    return _auth_headers("bob")
