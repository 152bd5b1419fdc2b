"""User repository: generic CRUD plus user-specific queries."""

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import DatabaseError
from src.domain.users.models import User
from src.domain.users.schemas import validate_user
from src.infrastructure.database.hooks import (
    DEFAULT_BEFORE_CREATE,
    DEFAULT_BEFORE_UPDATE,
    Clock,
    utc_now,
)
from src.infrastructure.database.repository import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for ``User`` rows.

    Users are validated before every insert and update; timestamps are then
    stamped by the default transforms.
    """

    def __init__(self, session: AsyncSession, *, clock: Clock = utc_now) -> None:
        super().__init__(
            session,
            User,
            clock=clock,
            before_create=(validate_user, *DEFAULT_BEFORE_CREATE),
            before_update=(validate_user, *DEFAULT_BEFORE_UPDATE),
        )

    async def get_users_by_age(self, min_age: int) -> list[User]:
        """Return live users strictly older than ``min_age``, ordered by ID.

        Args:
            min_age: Exclusive lower bound on age.

        Returns:
            list[User]: Matching users.

        Raises:
            DatabaseError: "age query failed" wrapping the driver error.
        """
        logger.debug("Fetching users older than {}", min_age)

        stmt = self._select().where(User.age > min_age).order_by(User.id)
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise DatabaseError(
                "age query failed",
                cause=e,
                context={"entity": "User", "min_age": min_age},
            ) from e
        users = list(result.scalars().all())

        logger.debug("Found {} users older than {}", len(users), min_age)

        return users
