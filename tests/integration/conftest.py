"""Shared fixtures for integration tests.

Integration tests run the real repositories against a private in-memory
SQLite database per test, so no server is needed.
"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import DatabaseConfig
from src.domain.users import UserRepository
from src.infrastructure.database import Database

MEMORY_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Clock that advances one second per call."""

    def __init__(self) -> None:
        self.current = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def database_config() -> DatabaseConfig:
    """Configuration for a private in-memory database."""
    return DatabaseConfig(database_url=MEMORY_URL)


@pytest.fixture
async def database(database_config: DatabaseConfig) -> AsyncGenerator[Database]:
    """A connected database handle, closed after the test."""
    handle = await Database(database_config).connect()
    yield handle
    await handle.close()


@pytest.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession]:
    """A session committed when the test finishes."""
    async with database.session() as session:
        yield session


@pytest.fixture
def fake_clock() -> FakeClock:
    """A deterministic clock."""
    return FakeClock()


@pytest.fixture
async def users(db_session: AsyncSession, fake_clock: FakeClock) -> UserRepository:
    """A user repository with its table in place."""
    repository = UserRepository(db_session, clock=fake_clock)
    await repository.create_table()
    return repository
