"""PostgreSQL implementation of ReportRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import ClassRow, ReportRow
from app.models.report import Report
from app.repos.pg_support import as_utc, count_of


class PgReportRepo:
    """Satisfies the ReportRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, report: Report) -> None:
        stmt = insert(ReportRow).values(
            id=report.id,
            class_id=report.class_id,
            student_id=report.student_id,
            snapshot=report.snapshot,
            generated_by=report.generated_by,
            created_at=report.created_at,
        )
        await self._session.execute(stmt)

    async def get(self, report_id: UUID) -> Report | None:
        stmt = select(ReportRow).where(ReportRow.id == report_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_report(row) if row is not None else None

    async def list(
        self,
        *,
        class_id: UUID | None,
        student_id: UUID | None,
        visible_to_teacher: UUID | None,
        descending: bool,
        offset: int,
        limit: int,
    ) -> tuple[list[Report], int]:
        stmt = select(ReportRow)
        if class_id is not None:
            stmt = stmt.where(ReportRow.class_id == class_id)
        if student_id is not None:
            stmt = stmt.where(ReportRow.student_id == student_id)
        if visible_to_teacher is not None:
            owned = select(ClassRow.id).where(ClassRow.teacher_id == visible_to_teacher)
            stmt = stmt.where(
                or_(
                    ReportRow.generated_by == visible_to_teacher,
                    ReportRow.class_id.in_(owned),
                )
            )
        total = await count_of(self._session, stmt)
        created = ReportRow.created_at.desc() if descending else ReportRow.created_at.asc()
        stmt = stmt.order_by(created).offset(offset).limit(limit)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_report(r) for r in rows], total

    async def delete_for_class(self, class_id: UUID) -> int:
        stmt = (
            delete(ReportRow)
            .where(ReportRow.class_id == class_id)
            .execution_options(synchronize_session=False)
        )
        return (await self._session.execute(stmt)).rowcount or 0

    async def delete_for_student(self, student_id: UUID) -> int:
        stmt = (
            delete(ReportRow)
            .where(ReportRow.student_id == student_id)
            .execution_options(synchronize_session=False)
        )
        return (await self._session.execute(stmt)).rowcount or 0


def _row_to_report(row: ReportRow) -> Report:
    return Report(
        id=row.id,
        snapshot=row.snapshot,
        generated_by=row.generated_by,
        created_at=as_utc(row.created_at),
        class_id=row.class_id,
        student_id=row.student_id,
    )
