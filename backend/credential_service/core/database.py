"""Async database engine and session management.

Configures the SQLAlchemy async engine with connection pooling and bounded
statement/checkout timeouts, and provides dependency injection for
database sessions.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from credential_service.core.config import settings


def _engine_options(url: str) -> dict:
    """Driver-specific engine options.

    asyncpg bounds every statement with command_timeout; other drivers
    (aiosqlite in tests) only get the shared options.
    """
    options: dict = {"pool_pre_ping": True}
    if url.startswith("postgresql+asyncpg"):
        options["pool_timeout"] = settings.database_pool_timeout
        options["connect_args"] = {
            "command_timeout": settings.database_command_timeout,
        }
    return options


engine = create_async_engine(
    settings.database_url,
    echo=settings.environment == "development",
    **_engine_options(settings.database_url),
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
