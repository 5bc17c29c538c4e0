import os
from collections.abc import AsyncGenerator, Callable, Iterator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from credential_service.core.config import settings
from credential_service.models import Base

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105

# Low cost factor for fast tests
TEST_BCRYPT_ROUNDS = 4

TEST_PASSWORD = "motdepasse123"  # nosec B105


class FakeMailer:
    """In-memory VerificationMailer that records what it was asked to send."""

    def __init__(self, *, configured: bool = True, error: Exception | None = None):
        self.configured = configured
        self.error = error
        self.sent: list[dict] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def send_verification(self, *, to_email: str, name: str, token: str) -> None:
        self.sent.append({"to_email": to_email, "name": name, "token": token})
        if self.error is not None:
            raise self.error


class FakeClock:
    """Settable clock for lockout and expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


def _database_url(tmp_path) -> str:
    """TEST_DATABASE_URL if set, else a throwaway SQLite file."""
    return os.environ.get("TEST_DATABASE_URL") or (
        f"sqlite+aiosqlite:///{tmp_path / 'credential_test.db'}"
    )


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINTs behave on SQLite.

    WAL mode keeps a reader session from blocking the app's writes.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture(autouse=True)
def test_settings() -> Iterator[None]:
    """Signing secret and cheap bcrypt for every test."""
    original_secret = settings.auth_secret
    original_rounds = settings.bcrypt_rounds
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.bcrypt_rounds = TEST_BCRYPT_ROUNDS
    yield
    settings.auth_secret = original_secret
    settings.bcrypt_rounds = original_rounds


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with a fresh schema."""
    url = _database_url(tmp_path)
    engine = create_async_engine(url, echo=False)
    if url.startswith("sqlite"):
        _enable_sqlite_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    session_factory, mailer: FakeMailer
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test database and FakeMailer.

    Sets up:
    - Test database connection via dependency override
    - FakeMailer via dependency override
    - httpx.AsyncClient with ASGI transport
    """
    from credential_service.api.deps import get_mailer
    from credential_service.core.database import get_db
    from credential_service.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def signup_payload() -> Callable[..., dict]:
    """Build a signup body; keyword arguments override fields."""

    def _build(**overrides) -> dict:
        body = {
            "username": "Ana",
            "email": "ana@example.com",
            "password": TEST_PASSWORD,
        }
        body.update(overrides)
        return body

    return _build
