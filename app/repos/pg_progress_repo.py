"""PostgreSQL implementation of ProgressRepo.

The upsert is one ``INSERT ... ON CONFLICT (student_id, lesson_id) DO
UPDATE`` statement.  PostgreSQL and SQLite share that syntax; the insert
construct is taken from the dialect of the session's bind.  Whether the
row was created comes from ``RETURNING xmax = 0`` on PostgreSQL, not from
comparing timestamps, so a replay within one clock tick still counts as an
update.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, literal_column, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import LessonRow, LevelRow, ModuleRow, ProgressRow
from app.models.progress import Progress, ProgressDetail, ProgressFilter
from app.repos.pg_curriculum_repo import row_to_context
from app.repos.pg_support import as_utc, count_of, dialect_name


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(
        self,
        student_id: UUID,
        lesson_id: UUID,
        *,
        completed: bool,
        score: float | None,
        set_score: bool,
        now: datetime,
    ) -> tuple[Progress, bool]:
        dialect = dialect_name(self._session)
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise RuntimeError(f"progress upsert not supported on {dialect!r}")

        stmt = insert(ProgressRow).values(
            student_id=student_id,
            lesson_id=lesson_id,
            completed=completed,
            score=score if set_score else None,
            completed_at=now if completed else None,
            created_at=now,
            updated_at=now,
        )
        # completed always replaces; score only when sent; completed_at only
        # moves forward on a completing write.
        set_ = {
            "completed": stmt.excluded.completed,
            "updated_at": stmt.excluded.updated_at,
        }
        if set_score:
            set_["score"] = stmt.excluded.score
        if completed:
            set_["completed_at"] = stmt.excluded.completed_at
        stmt = stmt.on_conflict_do_update(
            index_elements=["student_id", "lesson_id"], set_=set_
        )
        if dialect == "postgresql":
            # xmax is 0 on a freshly inserted tuple and set on an updated one.
            stmt = stmt.returning(literal_column("xmax = 0").label("inserted"))
            created = bool((await self._session.execute(stmt)).scalar_one())
        else:
            # SQLite (tests, local runs) has no xmax; a read before the write decides.
            created = await self.get(student_id, lesson_id) is None
            await self._session.execute(stmt)

        row = await self.get(student_id, lesson_id)
        if row is None:
            raise RuntimeError("progress row missing right after upsert")
        return row, created

    async def get(self, student_id: UUID, lesson_id: UUID) -> Progress | None:
        stmt = (
            select(ProgressRow)
            .where(
                ProgressRow.student_id == student_id,
                ProgressRow.lesson_id == lesson_id,
            )
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_progress(row) if row is not None else None

    async def list_details(
        self,
        student_id: UUID,
        flt: ProgressFilter,
        *,
        offset: int,
        limit: int,
    ) -> tuple[list[ProgressDetail], int]:
        stmt = (
            select(ProgressRow, LessonRow, ModuleRow, LevelRow)
            .join(LessonRow, LessonRow.id == ProgressRow.lesson_id)
            .join(ModuleRow, ModuleRow.id == LessonRow.module_id)
            .join(LevelRow, LevelRow.id == ModuleRow.level_id)
            .where(ProgressRow.student_id == student_id)
            .execution_options(populate_existing=True)
        )
        if flt.module_id is not None:
            stmt = stmt.where(LessonRow.module_id == flt.module_id)
        if flt.level_id is not None:
            stmt = stmt.where(ModuleRow.level_id == flt.level_id)
        if flt.completed is not None:
            stmt = stmt.where(ProgressRow.completed == flt.completed)

        total = await count_of(self._session, stmt)
        stmt = (
            stmt.order_by(ProgressRow.updated_at.desc(), LessonRow.order)
            .offset(offset)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).all()
        return [
            ProgressDetail(
                progress=_row_to_progress(p),
                context=row_to_context(lesson, module, level),
            )
            for p, lesson, module, level in rows
        ], total

    async def delete(self, student_id: UUID, lesson_id: UUID) -> bool:
        stmt = (
            delete(ProgressRow)
            .where(
                ProgressRow.student_id == student_id,
                ProgressRow.lesson_id == lesson_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return bool(result.rowcount)

    async def completion_counts(self, student_id: UUID) -> tuple[int, int]:
        stmt = (
            select(ProgressRow.completed, func.count())
            .where(ProgressRow.student_id == student_id)
            .group_by(ProgressRow.completed)
        )
        counts = {bool(flag): int(n) for flag, n in (await self._session.execute(stmt)).all()}
        return counts.get(True, 0), counts.get(False, 0)

    async def average_score(self, student_id: UUID) -> float | None:
        stmt = select(func.avg(ProgressRow.score)).where(
            ProgressRow.student_id == student_id,
            ProgressRow.score.is_not(None),
        )
        value = await self._session.scalar(stmt)
        # asyncpg returns Decimal for avg(numeric)
        return float(value) if value is not None else None

    async def delete_for_student(self, student_id: UUID) -> int:
        stmt = (
            delete(ProgressRow)
            .where(ProgressRow.student_id == student_id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0


def _row_to_progress(row: ProgressRow) -> Progress:
    return Progress(
        student_id=row.student_id,
        lesson_id=row.lesson_id,
        completed=row.completed,
        score=float(row.score) if row.score is not None else None,
        completed_at=as_utc(row.completed_at),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )
