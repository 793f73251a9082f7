"""Pytest fixtures for MigraineMe tests."""

from collections.abc import Generator
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from migraineme.config import get_settings
from migraineme.database import get_db
from migraineme.main import app
from migraineme.models import Base
from migraineme.services.auth import SupabaseAuthService
from migraineme.services.insights import InsightsState
from migraineme.services.session import SessionStore
from migraineme.services.supabase import SupabaseClient
from migraineme.workers import WorkerContext, build_scheduler

# Use SQLite in-memory for tests
TEST_DATABASE_URL = "sqlite:///:memory:"
TEST_USER_ID = "user-1"
UTC = ZoneInfo("UTC")


def make_token(sub: str = TEST_USER_ID) -> str:
    """Supabase-style access token carrying ``sub``."""
    return jwt.encode({"sub": sub, "role": "authenticated"}, "test-secret", algorithm="HS256")


@pytest.fixture(scope="function")
def session_factory() -> Generator[sessionmaker, None, None]:
    """Fresh in-memory store for each test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def test_db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Session on the test store, with get_db overridden to use it."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    db = session_factory()
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()


@pytest.fixture
def mock_supabase(mocker) -> MagicMock:
    """SupabaseClient double; async methods are AsyncMocks."""
    client = mocker.MagicMock(spec=SupabaseClient)
    client.select = AsyncMock(return_value=[])
    client.insert = AsyncMock(return_value=None)
    client.upsert = AsyncMock(return_value=None)
    client.update = AsyncMock(return_value=None)
    client.delete = AsyncMock(return_value=None)
    client.rpc = AsyncMock(return_value=None)
    client.invoke_function = AsyncMock(return_value=None)
    client.health_check = AsyncMock(return_value=True)
    return client


@pytest.fixture
def mock_auth(mocker) -> MagicMock:
    auth = mocker.MagicMock(spec=SupabaseAuthService)
    auth.refresh_session = AsyncMock()
    return auth


@pytest.fixture
def session_store(session_factory: sessionmaker, mock_auth: MagicMock) -> SessionStore:
    return SessionStore(session_factory, auth=mock_auth)


@pytest.fixture
def worker_context(session_factory, session_store, mock_supabase) -> WorkerContext:
    return WorkerContext(
        session_store=session_store,
        session_factory=session_factory,
        client=mock_supabase,
        tz=UTC,
        clock=lambda: datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc),
        usda=MagicMock(),
        food_risk=MagicMock(),
    )


@pytest.fixture
def client(test_db: Session, session_store, mock_supabase, worker_context) -> TestClient:
    """Test client wired to the test store and Supabase double.

    The lifespan is not run, so no background loop is started.
    """
    app.state.supabase = mock_supabase
    app.state.session_store = session_store
    app.state.insights = InsightsState(UTC)
    app.state.scheduler = build_scheduler(worker_context, get_settings())
    return TestClient(app)


@pytest.fixture
def auth_token() -> str:
    return make_token()


@pytest.fixture
def auth_headers(auth_token: str) -> dict:
    return {"Authorization": f"Bearer {auth_token}"}
