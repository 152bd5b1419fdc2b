"""Main entry point for the Repokit CRUD walkthrough.

Connects to the configured database, creates the users table and then
creates, queries, updates and deletes users, logging every step. Any error
ends the run with exit status 1.
"""

import asyncio
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from loguru import logger

from src.core.config import Settings, get_settings
from src.core.context import OperationContext, generate_correlation_id
from src.core.error_context import sanitize_error_context
from src.core.exceptions import RepokitError
from src.core.logging import bind_context, setup_logging
from src.domain.users import User, UserRepository
from src.infrastructure.database import Database, connect_database

AGE_THRESHOLD = 26


@dataclass(frozen=True)
class DemoSummary:
    """What the walkthrough observed, for logging and tests."""

    created: int
    older_than_threshold: int
    updated_name: str
    updated_age: int
    count_before_delete: int
    count_after_delete: int
    remaining: int


@asynccontextmanager
async def _users(
    database: Database, timeout: float | None
) -> AsyncGenerator[UserRepository]:
    """Open one committed unit of work bounded by ``timeout`` seconds."""
    async with asyncio.timeout(timeout), database.session() as session:
        yield UserRepository(session, clock=database.now)


async def run_demo(database: Database, timeout: float | None = None) -> DemoSummary:
    """Run the create/read/update/delete sequence against ``database``.

    Args:
        database: A connected database handle.
        timeout: Upper bound in seconds for each step (None for no bound).

    Returns:
        DemoSummary: Counts and values observed along the way.
    """
    async with _users(database, timeout) as users:
        await users.create_table()

    logger.info("=== Create users ===")
    async with _users(database, timeout) as users:
        first = await users.create(
            User(name="张三", email="zhangsan@example.com", age=25)
        )
        logger.info(
            "Created user: ID={}, name={}, age={}", first.id, first.name, first.age
        )

        second = await users.create(
            User(name="李四", email="lisi@example.com", age=30)
        )
        logger.info(
            "Created user: ID={}, name={}, age={}", second.id, second.name, second.age
        )

        batch = await users.batch_create(
            [
                User(name="王五", email="wangwu@example.com", age=28),
                User(name="赵六", email="zhaoliu@example.com", age=35),
            ]
        )
        logger.info("Batch created {} users", len(batch))
    first_id = first.id

    logger.info("=== Query users ===")
    async with _users(database, timeout) as users:
        user = await users.get_by_id(first_id)
        logger.info(
            "Fetched user: ID={}, name={}, age={}", user.id, user.name, user.age
        )

        all_users = await users.list_all()
        logger.info("Fetched {} users", len(all_users))

        older = await users.get_users_by_age(AGE_THRESHOLD)
        logger.info("Fetched {} users older than {}", len(older), AGE_THRESHOLD)

    logger.info("=== Update users ===")
    async with _users(database, timeout) as users:
        await users.update(User(id=first_id, age=26))
        await users.update(User(id=first_id, name="张三丰", age=27))

        updated = await users.get_by_id(first_id)
        logger.info("Verified update: name={}, age={}", updated.name, updated.age)

    logger.info("=== Delete users ===")
    async with _users(database, timeout) as users:
        count_before = await users.count()
        await users.delete(first_id)
        count_after = await users.count()
        logger.info(
            "User count before/after delete: {} -> {}", count_before, count_after
        )

    logger.info("=== Final check ===")
    async with _users(database, timeout) as users:
        remaining = await users.list_all()
        logger.info("Found {} users", len(remaining))

    logger.info("=== CRUD walkthrough complete ===")

    return DemoSummary(
        created=2 + len(batch),
        older_than_threshold=len(older),
        updated_name=updated.name,
        updated_age=updated.age,
        count_before_delete=count_before,
        count_after_delete=count_after,
        remaining=len(remaining),
    )


async def run(settings: Settings) -> DemoSummary:
    """Connect, run the walkthrough under one correlation ID and disconnect.

    Args:
        settings: Application settings.

    Returns:
        DemoSummary: The walkthrough results.
    """
    correlation_id = generate_correlation_id()
    OperationContext.set_correlation_id(correlation_id)

    database = await connect_database(settings)
    try:
        with logger.contextualize(correlation_id=correlation_id):
            return await run_demo(database, settings.operation_timeout_seconds)
    finally:
        await database.close()
        OperationContext.clear()


def main() -> None:
    """Main entry point for the Repokit walkthrough."""
    settings = get_settings()

    # Setup logging first
    setup_logging(settings)

    bind_context(app_name=settings.app_name, app_version=settings.app_version)

    logger.info("=== {} CRUD walkthrough ===", settings.app_name)

    try:
        asyncio.run(run(settings))
    except RepokitError as e:
        error_context = sanitize_error_context(
            e, {"severity": e.severity.value, "fingerprint": e.fingerprint}
        )
        if settings.environment == "development":
            error_context["stack_trace"] = e.stack_trace

        level = "CRITICAL" if e.should_alert else "ERROR"
        logger.opt(exception=e).log(
            level, "CRUD walkthrough failed: {}", e, **error_context
        )
        sys.exit(1)
    except TimeoutError as e:
        logger.opt(exception=e).critical(
            "CRUD walkthrough timed out", **sanitize_error_context(e)
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
