"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import (
    ClassRow,
    EnrollmentRow,
    ProgressRow,
    ReportRow,
    UserRow,
)
from app.models.user import User
from app.repos.pg_support import as_utc, column_values, count_of, guarded_delete
from app.repos.user_repo import USER_MUTABLE_FIELDS
from app.services.errors import ConflictError


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        stmt = select(UserRow).where(UserRow.id == user_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def get_by_username(self, username: str) -> User | None:
        stmt = select(UserRow).where(UserRow.username == username)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(UserRow).where(UserRow.email == email)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def get_many(self, user_ids: list[UUID]) -> dict[UUID, User]:
        if not user_ids:
            return {}
        stmt = select(UserRow).where(UserRow.id.in_(user_ids))
        rows = (await self._session.execute(stmt)).scalars().all()
        return {row.id: _row_to_user(row) for row in rows}

    async def add(self, user: User) -> None:
        row = UserRow(
            id=user.id,
            username=user.username,
            email=user.email,
            password_hash=user.password_hash,
            role=user.role,
            first_name=user.first_name,
            last_name=user.last_name,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise ConflictError(_conflict_message(exc)) from None

    async def update(self, user_id: UUID, changes: dict[str, Any]) -> User | None:
        unknown = set(changes) - USER_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update user fields: {sorted(unknown)}")
        stmt = (
            update(UserRow)
            .where(UserRow.id == user_id)
            .values(column_values(UserRow, {**changes, "updated_at": datetime.now(UTC)}))
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self._session.execute(stmt)
        except IntegrityError as exc:
            raise ConflictError(_conflict_message(exc)) from None
        if result.rowcount == 0:
            return None
        return await self._fresh(user_id)

    async def list(
        self, *, role: str | None, offset: int, limit: int
    ) -> tuple[list[User], int]:
        stmt = select(UserRow)
        if role is not None:
            stmt = stmt.where(UserRow.role == role)
        total = await count_of(self._session, stmt)
        stmt = (
            stmt.order_by(UserRow.created_at.desc(), UserRow.username)
            .offset(offset)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_user(r) for r in rows], total

    async def delete(self, user_id: UUID) -> bool:
        # One statement: the row goes only if nothing references it.
        stmt = (
            delete(UserRow)
            .where(
                UserRow.id == user_id,
                ~exists().where(ClassRow.teacher_id == user_id),
                ~exists().where(EnrollmentRow.student_id == user_id),
                ~exists().where(ProgressRow.student_id == user_id),
                ~exists().where(ReportRow.student_id == user_id),
            )
        )
        # generated_by is ON DELETE SET NULL in PostgreSQL; do it explicitly
        # so SQLite (no FK enforcement by default) behaves the same.
        await self._session.execute(
            update(ReportRow)
            .where(ReportRow.generated_by == user_id)
            .values(generated_by=None)
            .execution_options(synchronize_session=False)
        )
        return await guarded_delete(
            self._session,
            stmt,
            lambda: self.get_by_id(user_id),
            "user is still referenced; delete with cascade=true",
        )

    async def _fresh(self, user_id: UUID) -> User | None:
        stmt = (
            select(UserRow)
            .where(UserRow.id == user_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_user(row) if row is not None else None


def _conflict_message(exc: IntegrityError) -> str:
    text = str(exc.orig).lower()
    if "email" in text:
        return "email already exists"
    return "username already exists"


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role=row.role,  # type: ignore[arg-type]
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )
