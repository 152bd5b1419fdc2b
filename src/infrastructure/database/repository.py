"""Base repository pattern implementation for database operations.

This module provides a generic repository base class implementing CRUD
operations for SQLAlchemy models using async patterns.

Models that include ``SoftDeleteMixin`` are soft-deleted: ``delete`` only
stamps ``deleted_at`` and every default query skips such rows. Models
without it are removed physically.

Driver errors never escape raw: they are wrapped in ``DatabaseError`` (or
``ConstraintViolationError`` for integrity failures) with the original
exception chained as the cause.
"""

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, cast

from loguru import logger
from sqlalchemy import Select, func, select
from sqlalchemy import delete as sql_delete
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import update as sql_update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.schema import CreateSchema

from src.core.exceptions import (
    ConstraintViolationError,
    DatabaseError,
    MigrationError,
    NotFoundError,
    ValidationError,
)
from src.core.types import ColumnValues
from src.infrastructure.database.base import (
    MANAGED_COLUMNS,
    BaseModel,
    SoftDeleteMixin,
)
from src.infrastructure.database.hooks import (
    DEFAULT_BEFORE_CREATE,
    DEFAULT_BEFORE_UPDATE,
    Clock,
    PersistHook,
    apply_hooks,
    utc_now,
)


class BaseRepository[T: BaseModel]:
    """Base repository class providing common CRUD operations.

    The repository owns no connection of its own: it works through the
    session it is given, so all calls made through one repository share
    that session's transaction.

    Args:
        session: The async SQLAlchemy session to use for operations.
        model_class: The SQLAlchemy model class this repository manages.
        clock: Source of timestamps for stamping and soft deletion.
        before_create: Transforms applied to each entity before insert.
        before_update: Transforms applied to the stored row before update.

    Example:
        class UserRepository(BaseRepository[User]):
            def __init__(self, session: AsyncSession) -> None:
                super().__init__(session, User)
    """

    def __init__(
        self,
        session: AsyncSession,
        model_class: type[T],
        *,
        clock: Clock = utc_now,
        before_create: Sequence[PersistHook] = DEFAULT_BEFORE_CREATE,
        before_update: Sequence[PersistHook] = DEFAULT_BEFORE_UPDATE,
    ) -> None:
        self.session = session
        self.model_class = model_class
        self.clock = clock
        self.before_create = tuple(before_create)
        self.before_update = tuple(before_update)
        self.soft_delete = issubclass(model_class, SoftDeleteMixin)
        logger.debug("Initialized repository for {}", model_class.__name__)

    @property
    def entity_name(self) -> str:
        """Name of the managed model class, used in logs and errors."""
        return self.model_class.__name__

    @contextmanager
    def _translate_errors(self, action: str, **context: Any) -> Iterator[None]:
        """Wrap driver errors raised inside the block.

        Args:
            action: Human-readable prefix, e.g. "create User".
            **context: Extra fields attached to the raised error.
        """
        context = {"entity": self.entity_name, **context}
        try:
            yield
        except IntegrityError as e:
            raise ConstraintViolationError(
                f"{action} failed", cause=e, context=context
            ) from e
        except SQLAlchemyError as e:
            raise DatabaseError(f"{action} failed", cause=e, context=context) from e

    def _deleted_at(self) -> Any:
        return cast("type[SoftDeleteMixin]", self.model_class).deleted_at

    def _select(self, *, include_deleted: bool = False) -> Select[tuple[T]]:
        """Build a SELECT for the model, skipping soft-deleted rows by default."""
        stmt = select(self.model_class)
        if self.soft_delete and not include_deleted:
            stmt = stmt.where(self._deleted_at().is_(None))
        return stmt

    def _column_values(self, entity: T) -> ColumnValues:
        """Collect the column attributes the caller actually set on ``entity``.

        Attributes never assigned are absent from the instance dict, so a
        partially built entity only contributes the fields it names.
        """
        state = entity.__dict__
        return {
            attr.key: state[attr.key]
            for attr in sa_inspect(self.model_class).column_attrs
            if attr.key in state and attr.key not in MANAGED_COLUMNS
        }

    def _discard_changes(self, entity: T) -> None:
        """Drop unflushed column changes on ``entity``, keeping its loaded values.

        Attributes changed since loading get their committed value back;
        attributes set without a loaded value are expired.
        """
        state = sa_inspect(entity)
        for attr in state.mapper.column_attrs:
            history = state.attrs[attr.key].history
            if not history.has_changes():
                continue
            if history.deleted:
                set_committed_value(entity, attr.key, history.deleted[0])
            else:
                self.session.expire(entity, [attr.key])

    async def create_table(self) -> None:
        """Create the model's table (and its schema, if one is configured).

        Existing tables are left untouched.

        Raises:
            MigrationError: If the DDL fails.
        """
        table = cast("Any", self.model_class).__table__

        def _create(sync_conn: Connection) -> None:
            schema = (
                sync_conn.get_execution_options()
                .get("schema_translate_map", {})
                .get(table.schema)
            )
            if schema and sync_conn.dialect.name == "postgresql":
                sync_conn.execute(CreateSchema(schema, if_not_exists=True))
            table.create(sync_conn, checkfirst=True)

        try:
            conn = await self.session.connection()
            await conn.run_sync(_create)
        except SQLAlchemyError as e:
            raise MigrationError(
                f"table migration failed for {table.name}",
                cause=e,
                context={"entity": self.entity_name, "table": table.name},
            ) from e

        logger.info(
            "Table {} for {} created successfully", table.name, self.entity_name
        )

    async def create(self, obj: T) -> T:
        """Insert a new model instance.

        Args:
            obj: The model instance to create.

        Returns:
            T: The created instance with populated ID and timestamps.

        Raises:
            ConstraintViolationError: If a constraint (e.g. unique index) fails.
            DatabaseError: For any other driver error.
        """
        logger.debug("Creating new {} instance", self.entity_name)

        apply_hooks(self.before_create, obj, self.clock())

        with self._translate_errors(f"create {self.entity_name}"):
            self.session.add(obj)
            await self.session.flush()
            await self.session.refresh(obj)

        logger.info("Created {} instance with ID: {}", self.entity_name, obj.id)

        return obj

    async def batch_create(self, objs: Sequence[T]) -> list[T]:
        """Insert several instances in a single flush.

        Either every row is written or the first error is raised.

        Args:
            objs: The model instances to create.

        Returns:
            list[T]: The created instances with populated IDs.
        """
        if not objs:
            return []

        logger.debug("Batch creating {} {} instances", len(objs), self.entity_name)

        now = self.clock()
        for obj in objs:
            apply_hooks(self.before_create, obj, now)

        with self._translate_errors(
            f"batch create {self.entity_name}", batch_size=len(objs)
        ):
            self.session.add_all(objs)
            await self.session.flush()

        logger.info("Batch created {} {} instances", len(objs), self.entity_name)

        return list(objs)

    async def _find(self, entity_id: int, *, include_deleted: bool = False) -> T | None:
        stmt = self._select(include_deleted=include_deleted).where(
            self.model_class.id == entity_id
        )
        with self._translate_errors(
            f"fetch {self.entity_name}", entity_id=entity_id
        ):
            result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, entity_id: int, *, include_deleted: bool = False) -> T:
        """Retrieve a model instance by its ID.

        Args:
            entity_id: The primary key ID of the model to retrieve.
            include_deleted: Also consider soft-deleted rows.

        Returns:
            T: The model instance.

        Raises:
            NotFoundError: If no matching row exists.
        """
        logger.debug("Fetching {} by ID: {}", self.entity_name, entity_id)

        instance = await self._find(entity_id, include_deleted=include_deleted)
        if instance is None:
            logger.debug(
                "{} instance not found with ID: {}", self.entity_name, entity_id
            )
            raise NotFoundError(
                f"{self.entity_name} with ID {entity_id} not found",
                context={"entity": self.entity_name, "entity_id": entity_id},
            )

        return instance

    async def update(self, obj: T) -> T:
        """Save an entity by its ID, inserting it if no live row has that ID.

        Only the column attributes set on ``obj`` are copied onto the stored
        row; ``id`` and the timestamp columns are never taken from the caller.

        Args:
            obj: Entity carrying the ID and the fields to write.

        Returns:
            T: The stored instance after the update.

        Raises:
            ValidationError: If a pre-update transform rejects the row; the
                stored instance is left as it was loaded.
        """
        entity_id = obj.__dict__.get("id")
        if entity_id is None:
            logger.debug("{} has no ID, creating instead of updating", self.entity_name)
            return await self.create(obj)

        values = self._column_values(obj)
        logger.debug(
            "Updating {} instance ID {} - fields: {}",
            self.entity_name,
            entity_id,
            list(values.keys()),
        )

        # Changes pending on a loaded ``obj`` must not be flushed before the
        # transforms have accepted them
        with self.session.no_autoflush:
            instance = await self._find(entity_id)
        if instance is None:
            logger.debug(
                "{} instance ID {} not found, inserting", self.entity_name, entity_id
            )
            return await self.create(obj)

        if instance is not obj:
            for key, value in values.items():
                setattr(instance, key, value)

        try:
            apply_hooks(self.before_update, instance, self.clock())
        except Exception:
            # Covers changes made directly on a loaded ``obj`` too
            self._discard_changes(instance)
            raise

        with self._translate_errors(
            f"update {self.entity_name}", entity_id=entity_id
        ):
            await self.session.flush()
            await self.session.refresh(instance)

        logger.info(
            "Updated {} instance ID {} - fields: {}",
            self.entity_name,
            entity_id,
            list(values.keys()),
        )

        return instance

    async def delete(self, entity_id: int) -> None:
        """Delete a model instance by its ID.

        Soft-deletable models only get ``deleted_at`` stamped; the row stays
        in storage. Other models are removed physically.

        Args:
            entity_id: The primary key ID of the model to delete.

        Raises:
            NotFoundError: If no live row has that ID.
        """
        if not self.soft_delete:
            await self.hard_delete(entity_id)
            return

        logger.debug("Soft deleting {} with ID: {}", self.entity_name, entity_id)

        stmt = (
            sql_update(self.model_class)
            .where(self.model_class.id == entity_id, self._deleted_at().is_(None))
            .values(deleted_at=self.clock())
        )
        with self._translate_errors(
            f"delete {self.entity_name}", entity_id=entity_id
        ):
            result = await self.session.execute(stmt)

        if result.rowcount == 0:
            raise NotFoundError(
                f"{self.entity_name} with ID {entity_id} not found",
                context={"entity": self.entity_name, "entity_id": entity_id},
            )

        logger.info("Soft deleted {} with ID: {}", self.entity_name, entity_id)

    async def hard_delete(self, entity_id: int) -> None:
        """Physically remove a row, whether or not it was soft-deleted.

        Args:
            entity_id: The primary key ID of the model to delete.

        Raises:
            NotFoundError: If no row has that ID.
        """
        logger.debug("Hard deleting {} with ID: {}", self.entity_name, entity_id)

        stmt = sql_delete(self.model_class).where(self.model_class.id == entity_id)
        with self._translate_errors(
            f"hard delete {self.entity_name}", entity_id=entity_id
        ):
            result = await self.session.execute(stmt)

        if result.rowcount == 0:
            raise NotFoundError(
                f"{self.entity_name} with ID {entity_id} not found",
                context={"entity": self.entity_name, "entity_id": entity_id},
            )

        logger.info("Hard deleted {} with ID: {}", self.entity_name, entity_id)

    async def restore(self, entity_id: int) -> T:
        """Clear the deletion marker of a soft-deleted row.

        Args:
            entity_id: The primary key ID of the row to restore.

        Returns:
            T: The restored instance.

        Raises:
            ValidationError: If the model does not support soft deletion.
            NotFoundError: If no soft-deleted row has that ID.
        """
        if not self.soft_delete:
            raise ValidationError(
                f"{self.entity_name} does not support soft deletion",
                context={"entity": self.entity_name},
            )

        stmt = (
            sql_update(self.model_class)
            .where(self.model_class.id == entity_id, self._deleted_at().is_not(None))
            .values(deleted_at=None)
        )
        with self._translate_errors(
            f"restore {self.entity_name}", entity_id=entity_id
        ):
            result = await self.session.execute(stmt)

        if result.rowcount == 0:
            raise NotFoundError(
                f"Deleted {self.entity_name} with ID {entity_id} not found",
                context={"entity": self.entity_name, "entity_id": entity_id},
            )

        logger.info("Restored {} with ID: {}", self.entity_name, entity_id)

        return await self.get_by_id(entity_id)

    async def list_all(self) -> list[T]:
        """Retrieve every live instance ordered by ID.

        The result is unbounded; use ``list`` for large tables.

        Returns:
            list[T]: All live model instances.
        """
        logger.debug("Fetching all {} instances", self.entity_name)

        stmt = self._select().order_by(self.model_class.id)
        with self._translate_errors(f"list {self.entity_name}"):
            result = await self.session.execute(stmt)
        instances = list(result.scalars().all())

        logger.debug("Retrieved {} {} instances", len(instances), self.entity_name)

        return instances

    async def list(self, offset: int, limit: int) -> tuple[list[T], int]:
        """Retrieve one page of live instances plus the total live count.

        The count and the page are read through the same session, inside
        the same transaction, and the count returned is the one checked here.

        Args:
            offset: Number of records to skip.
            limit: Maximum number of records to return.

        Returns:
            tuple[list[T], int]: The page and the total number of live rows.

        Raises:
            ValidationError: If offset is negative or limit is not positive.
        """
        if offset < 0 or limit <= 0:
            raise ValidationError(
                "offset must be >= 0 and limit must be > 0",
                context={"offset": offset, "limit": limit},
            )

        logger.debug(
            "Fetching {} page - offset: {}, limit: {}",
            self.entity_name,
            offset,
            limit,
        )

        total = await self.count()

        stmt = (
            self._select().order_by(self.model_class.id).offset(offset).limit(limit)
        )
        with self._translate_errors(f"list {self.entity_name} page"):
            result = await self.session.execute(stmt)
        instances = list(result.scalars().all())

        logger.debug(
            "Retrieved {} of {} {} instances",
            len(instances),
            total,
            self.entity_name,
        )

        return instances, total

    async def count(self) -> int:
        """Count all live instances of the model.

        Returns:
            int: The number of rows not soft-deleted.
        """
        logger.debug("Counting {} instances", self.entity_name)

        stmt = select(func.count()).select_from(self.model_class)
        if self.soft_delete:
            stmt = stmt.where(self._deleted_at().is_(None))
        with self._translate_errors(f"count {self.entity_name}"):
            result = await self.session.execute(stmt)
        count_value = result.scalar() or 0

        logger.debug("Counted {} {} instances", count_value, self.entity_name)

        return count_value
