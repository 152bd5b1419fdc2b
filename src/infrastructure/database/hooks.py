"""Pre-persistence transforms applied by repositories.

Instead of lifecycle callbacks living on the entity classes, repositories
receive explicit lists of transforms and call them, in order, right before
an entity is inserted or updated. Each transform gets the entity and the
timestamp of the current operation so that every transform in one call sees
the same instant.

The defaults stamp ``created_at``/``updated_at``; domain repositories add
their own transforms (for example validation) in front of them.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

type Clock = Callable[[], datetime]
type PersistHook = Callable[[Any, datetime], None]


def utc_now() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(UTC)


def make_clock(timezone: str) -> Clock:
    """Build a clock that returns timezone-aware times in ``timezone``.

    Args:
        timezone: IANA timezone name, e.g. ``Asia/Shanghai``.

    Returns:
        Clock: Zero-argument callable returning the current time.
    """
    zone = ZoneInfo(timezone)

    def now() -> datetime:
        return datetime.now(zone)

    return now


def stamp_created(entity: Any, now: datetime) -> None:
    """Stamp both timestamps, overwriting anything the caller supplied."""
    entity.created_at = now
    entity.updated_at = now


def stamp_updated(entity: Any, now: datetime) -> None:
    """Refresh the update timestamp."""
    entity.updated_at = now


DEFAULT_BEFORE_CREATE: tuple[PersistHook, ...] = (stamp_created,)
DEFAULT_BEFORE_UPDATE: tuple[PersistHook, ...] = (stamp_updated,)


def apply_hooks(hooks: Iterable[PersistHook], entity: Any, now: datetime) -> None:
    """Run each transform against the entity in order.

    Args:
        hooks: Transforms to run.
        entity: The entity about to be persisted.
        now: Timestamp of the current operation.
    """
    for hook in hooks:
        hook(entity, now)
