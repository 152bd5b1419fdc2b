"""Shared fixtures for repository unit tests."""

from datetime import UTC, datetime, timedelta

import pytest
from pytest_mock import MockerFixture, MockType
from sqlalchemy import String
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.base import BaseModel, SoftDeleteMixin
from src.infrastructure.database.repository import BaseRepository

FIXED_NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class ItemForRepositoryTesting(BaseModel):
    """Model removed physically on delete."""

    __tablename__ = "repository_test_items"

    name: Mapped[str] = mapped_column(String(50))
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)


class SoftItemForRepositoryTesting(SoftDeleteMixin, BaseModel):
    """Model that is only marked as deleted."""

    __tablename__ = "repository_test_soft_items"

    name: Mapped[str] = mapped_column(String(50))


class FakeClock:
    """Clock that advances one second per call."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self.current = start - timedelta(seconds=1)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def item_model() -> type[ItemForRepositoryTesting]:
    """The hard-delete test model."""
    return ItemForRepositoryTesting


@pytest.fixture
def soft_item_model() -> type[SoftItemForRepositoryTesting]:
    """The soft-delete test model."""
    return SoftItemForRepositoryTesting


@pytest.fixture
def fake_clock() -> FakeClock:
    """A deterministic clock starting at FIXED_NOW."""
    return FakeClock()


@pytest.fixture
def mock_session(mocker: MockerFixture) -> MockType:
    """Mock AsyncSession for testing."""
    session = mocker.AsyncMock(spec=AsyncSession)
    session.add = mocker.Mock()
    session.add_all = mocker.Mock()
    session.no_autoflush = mocker.MagicMock()
    return session


@pytest.fixture
def item_repository(
    mock_session: MockType, fake_clock: FakeClock
) -> BaseRepository[ItemForRepositoryTesting]:
    """Repository over the hard-delete test model."""
    return BaseRepository(mock_session, ItemForRepositoryTesting, clock=fake_clock)


@pytest.fixture
def soft_item_repository(
    mock_session: MockType, fake_clock: FakeClock
) -> BaseRepository[SoftItemForRepositoryTesting]:
    """Repository over the soft-delete test model."""
    return BaseRepository(mock_session, SoftItemForRepositoryTesting, clock=fake_clock)
