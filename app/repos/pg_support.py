"""Small helpers shared by the SQL repositories."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.errors import ConflictError


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def column_values(row_cls: Any, changes: dict[str, Any]) -> dict[Any, Any]:
    """Key an update dict by mapped attribute, so renamed columns resolve."""
    return {getattr(row_cls, name): value for name, value in changes.items()}


async def count_of(session: AsyncSession, stmt: Select) -> int:
    total = await session.scalar(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    )
    return int(total or 0)


def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


async def guarded_delete(
    session: AsyncSession,
    stmt: Any,
    lookup: Callable[[], Awaitable[Any]],
    conflict_message: str,
) -> bool:
    """Run a ``DELETE ... WHERE NOT EXISTS (...)`` and tell absent from referenced.

    Returns True when the row was removed and False when it never existed.
    Raises ConflictError when the row exists but the guard kept it.
    """
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount:
        return True
    if await lookup() is None:
        return False
    raise ConflictError(conflict_message)
