"""Async database engine and handle lifecycle management.

This module builds the connection pool from configuration and wraps it in an
explicitly owned ``Database`` handle. Callers create one handle, pass it to
whatever needs database access and close it when done; nothing here keeps a
process-wide engine.

Core functionality:
- **Connection pooling**: Idle/open limits and connection recycling
- **Liveness check**: ``SELECT 1`` ping before the handle is handed out
- **Session lifecycle**: Commit on success, rollback on error
- **Query monitoring**: Slow query detection through engine events
- **Driver settings**: TLS mode, session timezone and statement timeout
  passed to asyncpg
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any, Self
from weakref import WeakKeyDictionary

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.engine import URL, Connection, make_url
from sqlalchemy.engine.interfaces import DBAPICursor, ExecutionContext
from sqlalchemy.exc import ArgumentError, InvalidRequestError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.core.config import DatabaseConfig, LogConfig, Settings
from src.core.context import OperationContext
from src.core.error_context import sanitize_sql_params
from src.core.exceptions import DatabaseConnectionError
from src.core.logging import configure_orm_logging
from src.infrastructure.database.hooks import Clock, make_clock

POSTGRES_DRIVER = "postgresql+asyncpg"
MAX_LOGGED_STATEMENT_LENGTH = 500

# Store query start times for execution contexts
_query_start_times: WeakKeyDictionary[ExecutionContext, float] = WeakKeyDictionary()


def _before_cursor_execute(
    _conn: Connection,
    _cursor: DBAPICursor,
    _statement: str,
    _parameters: dict[str, Any] | list[Any] | tuple[Any, ...] | None,
    context: ExecutionContext,
    _executemany: bool,
) -> None:
    """Track query start time for performance monitoring."""
    _query_start_times[context] = time.time()


def _make_after_cursor_execute(threshold_ms: int) -> Any:
    """Build the listener that logs statements slower than ``threshold_ms``.

    Args:
        threshold_ms: Duration in milliseconds from which a query is slow.

    Returns:
        Any: Listener suitable for the ``after_cursor_execute`` event.
    """

    def _after_cursor_execute(
        _conn: Connection,
        cursor: DBAPICursor,
        statement: str,
        parameters: dict[str, Any] | list[Any] | tuple[Any, ...] | None,
        context: ExecutionContext,
        executemany: bool,
    ) -> None:
        start_time = _query_start_times.pop(context, None)
        if start_time is None:
            return

        duration_ms = (time.time() - start_time) * 1000
        if duration_ms < threshold_ms:
            return

        rows_affected: int | None = getattr(cursor, "rowcount", -1)
        if rows_affected is None:
            rows_affected = -1

        clean_statement = " ".join(statement.split())[:MAX_LOGGED_STATEMENT_LENGTH]

        logger.warning(
            "Slow query detected: {}... Duration: {:.2f}ms Rows: {}",
            clean_statement[:100],
            round(duration_ms, 2),
            rows_affected,
            query=clean_statement,
            duration_ms=round(duration_ms, 2),
            rows_affected=rows_affected,
            parameters=sanitize_sql_params(parameters),
            correlation_id=OperationContext.get_correlation_id(),
            executemany=executemany,
            threshold_ms=threshold_ms,
        )

    return _after_cursor_execute


def build_database_url(config: DatabaseConfig) -> URL:
    """Compose the connection URL from configuration.

    An explicit ``database_url`` wins over the individual fields.

    Args:
        config: Database configuration.

    Returns:
        URL: SQLAlchemy URL object (render with ``hide_password=True`` to log).
    """
    if config.database_url:
        return make_url(config.database_url)

    return URL.create(
        POSTGRES_DRIVER,
        username=config.user,
        password=config.password.get_secret_value(),
        host=config.host,
        port=config.port,
        database=config.name,
    )


def _engine_options(config: DatabaseConfig, url: URL) -> dict[str, Any]:
    """Translate configuration into ``create_async_engine`` keyword arguments.

    Pool sizing and driver settings only apply to PostgreSQL; SQLite uses the
    driver's default pool.
    """
    if url.get_backend_name() != "postgresql":
        return {}

    options: dict[str, Any] = {
        "pool_size": config.max_idle_conns,
        "max_overflow": config.max_open_conns - config.max_idle_conns,
        "pool_timeout": config.pool_timeout,
        "pool_pre_ping": config.pool_pre_ping,
        "connect_args": {
            "ssl": config.ssl_mode,
            "command_timeout": config.command_timeout,
            "server_settings": {"timezone": config.timezone},
        },
    }
    if config.max_lifetime_seconds > 0:
        options["pool_recycle"] = config.max_lifetime_seconds
    return options


def create_database_engine(
    config: DatabaseConfig, log_config: LogConfig | None = None
) -> AsyncEngine:
    """Create an async SQLAlchemy engine with connection pooling.

    Args:
        config: Database configuration.
        log_config: Logging configuration; enables slow query listeners when
            ``enable_sql_logging`` is set.

    Returns:
        AsyncEngine: Configured async engine instance.
    """
    url = build_database_url(config)
    engine = create_async_engine(url, **_engine_options(config, url))

    if config.db_schema:
        engine = engine.execution_options(
            schema_translate_map={None: config.db_schema}
        )

    if log_config is not None and log_config.enable_sql_logging:
        try:
            event.listen(
                engine.sync_engine, "before_cursor_execute", _before_cursor_execute
            )
            event.listen(
                engine.sync_engine,
                "after_cursor_execute",
                _make_after_cursor_execute(log_config.slow_query_threshold_ms),
            )
            logger.info("Registered custom query performance event listeners")
        except (InvalidRequestError, ArgumentError, AttributeError, TypeError) as e:
            logger.warning(
                "Failed to register query performance event listeners: {}: {}",
                type(e).__name__,
                str(e),
            )

    logger.info(
        "Created database engine for {} - max_idle: {}, max_open: {}, schema: {}",
        url.render_as_string(hide_password=True),
        config.max_idle_conns,
        config.max_open_conns,
        config.db_schema,
    )

    return engine


class Database:
    """Explicitly owned database handle.

    Wraps one engine (connection pool) and its session factory. Create it,
    ``connect()`` it, pass it to the code that needs it and ``close()`` it.
    It can also be used as an async context manager.

    Args:
        config: Database configuration.
        log_config: Optional logging configuration for query monitoring.
    """

    def __init__(
        self, config: DatabaseConfig, log_config: LogConfig | None = None
    ) -> None:
        self.config = config
        self.log_config = log_config
        self.now: Clock = make_clock(config.timezone)
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._closed = False

    @property
    def is_connected(self) -> bool:
        """Whether the handle holds an open engine."""
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        """The underlying engine.

        Raises:
            DatabaseConnectionError: If the handle is not connected.
        """
        if self._engine is None:
            state = "closed" if self._closed else "not connected"
            msg = f"database handle is {state}"
            raise DatabaseConnectionError(msg)
        return self._engine

    def _get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            state = "closed" if self._closed else "not connected"
            msg = f"database handle is {state}"
            raise DatabaseConnectionError(msg)
        return self._session_factory

    async def connect(self) -> Self:
        """Build the engine and verify the database answers a ping.

        Returns:
            Self: This handle, for chaining.

        Raises:
            DatabaseConnectionError: If the ping fails or the handle was closed.
        """
        if self._closed:
            msg = "database handle is closed"
            raise DatabaseConnectionError(msg)
        if self._engine is not None:
            return self

        engine = create_database_engine(self.config, self.log_config)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            await engine.dispose()
            msg = "failed to ping database"
            raise DatabaseConnectionError(msg, cause=e) from e

        self._engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Connected to database")
        return self

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """Get an async session that commits on success and rolls back on error.

        Yields:
            AsyncGenerator[AsyncSession]: Database session for performing operations.

        Example:
            async with database.session() as session:
                users = UserRepository(session)
                await users.count()
        """
        async with self._get_session_factory()() as session:
            logger.debug("Created new database session")
            try:
                yield session
                await session.commit()
                logger.debug("Database session committed successfully")
            except Exception:
                await session.rollback()
                logger.debug("Database session rolled back due to error")
                raise

    async def check_connection(self) -> tuple[bool, str | None]:
        """Check if the database is reachable.

        Returns:
            tuple[bool, str | None]: Health flag and error message (None if healthy).
        """
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                _ = result.scalar()
        except (SQLAlchemyError, DatabaseConnectionError, OSError) as e:
            return False, str(e)
        else:
            return True, None

    async def close(self) -> None:
        """Dispose the connection pool. A no-op if never connected."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine disposed")
            self._closed = True
        self._engine = None
        self._session_factory = None

    async def __aenter__(self) -> Self:
        return await self.connect()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


async def connect_database(settings: Settings) -> Database:
    """Build a connected handle from settings.

    Applies the configured ORM log verbosity before connecting.

    Args:
        settings: Application settings.

    Returns:
        Database: A connected handle owned by the caller.
    """
    configure_orm_logging(settings.database_config.orm_log_level)
    database = Database(settings.database_config, settings.log_config)
    return await database.connect()
