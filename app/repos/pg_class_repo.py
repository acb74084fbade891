"""PostgreSQL implementation of ClassRepo."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, exists, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import ClassRow, EnrollmentRow, ReportRow
from app.models.classroom import Enrollment, SchoolClass
from app.repos.class_repo import (
    CLASS_MUTABLE_FIELDS,
    MSG_ALREADY_ENROLLED,
    MSG_CLASS_CODE_TAKEN,
    MSG_CLASS_IN_USE,
)
from app.repos.pg_support import as_utc, column_values, count_of, guarded_delete
from app.services.errors import ConflictError, DomainError, NotFoundError


# Unique violations keep their conflict message; a foreign key that fails
# means the referenced row vanished between the service check and the write.
def _class_conflict(exc: IntegrityError, teacher_id: UUID | None) -> DomainError:
    if "foreign key" in str(exc.orig).lower():
        return NotFoundError("Teacher", teacher_id)
    return ConflictError(MSG_CLASS_CODE_TAKEN)


def _enrollment_conflict(exc: IntegrityError, enrollment: Enrollment) -> DomainError:
    message = str(exc.orig).lower()
    if "foreign key" not in message:
        return ConflictError(MSG_ALREADY_ENROLLED)
    # PostgreSQL names the constraint (class_students_class_id_fkey); SQLite
    # does not, so an unnamed failure is reported against the student.
    if "class_id" in message:
        return NotFoundError("Class", enrollment.class_id)
    return NotFoundError("Student", enrollment.student_id)


class PgClassRepo:
    """Satisfies the ClassRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_class(self, school_class: SchoolClass) -> None:
        self._session.add(
            ClassRow(
                id=school_class.id,
                code=school_class.code,
                name=school_class.name,
                teacher_id=school_class.teacher_id,
                grade=school_class.grade,
                section=school_class.section,
                schedule=school_class.schedule,
                created_at=school_class.created_at,
                updated_at=school_class.updated_at,
            )
        )
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise _class_conflict(exc, school_class.teacher_id) from None

    async def get_class(self, class_id: UUID) -> SchoolClass | None:
        stmt = (
            select(ClassRow)
            .where(ClassRow.id == class_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_class(row) if row is not None else None

    async def list_classes(
        self,
        *,
        teacher_id: UUID | None,
        grade: str | None,
        offset: int,
        limit: int,
    ) -> tuple[list[SchoolClass], int]:
        stmt = select(ClassRow)
        if teacher_id is not None:
            stmt = stmt.where(ClassRow.teacher_id == teacher_id)
        if grade is not None:
            stmt = stmt.where(ClassRow.grade == grade)
        total = await count_of(self._session, stmt)
        stmt = (
            stmt.order_by(ClassRow.created_at.desc(), ClassRow.code)
            .offset(offset)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_class(r) for r in rows], total

    async def classes_for_teacher(self, teacher_id: UUID) -> list[SchoolClass]:
        stmt = (
            select(ClassRow)
            .where(ClassRow.teacher_id == teacher_id)
            .order_by(ClassRow.code)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_class(r) for r in rows]

    async def student_counts(self, class_ids: list[UUID]) -> dict[UUID, int]:
        counts = dict.fromkeys(class_ids, 0)
        if not class_ids:
            return counts
        stmt = (
            select(EnrollmentRow.class_id, func.count())
            .where(EnrollmentRow.class_id.in_(class_ids))
            .group_by(EnrollmentRow.class_id)
        )
        for class_id, n in (await self._session.execute(stmt)).all():
            counts[class_id] = int(n)
        return counts

    async def update_class(
        self, class_id: UUID, changes: dict[str, Any]
    ) -> SchoolClass | None:
        unknown = set(changes) - CLASS_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update class fields: {sorted(unknown)}")
        stmt = (
            update(ClassRow)
            .where(ClassRow.id == class_id)
            .values(column_values(ClassRow, {**changes, "updated_at": datetime.now(UTC)}))
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self._session.execute(stmt)
        except IntegrityError as exc:
            raise _class_conflict(exc, changes.get("teacher_id")) from None
        if result.rowcount == 0:
            return None
        return await self.get_class(class_id)

    async def delete_class(self, class_id: UUID) -> bool:
        stmt = delete(ClassRow).where(
            ClassRow.id == class_id,
            ~exists().where(EnrollmentRow.class_id == class_id),
            ~exists().where(ReportRow.class_id == class_id),
        )
        return await guarded_delete(
            self._session, stmt, lambda: self.get_class(class_id), MSG_CLASS_IN_USE
        )

    # --- enrollment ---

    async def enroll(self, enrollment: Enrollment) -> None:
        # The unique index on student_id arbitrates concurrent enrollments.
        stmt = insert(EnrollmentRow).values(
            class_id=enrollment.class_id,
            student_id=enrollment.student_id,
            enrolled_at=enrollment.enrolled_at,
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as exc:
            raise _enrollment_conflict(exc, enrollment) from None

    async def unenroll(self, class_id: UUID, student_id: UUID) -> bool:
        stmt = (
            delete(EnrollmentRow)
            .where(
                EnrollmentRow.class_id == class_id,
                EnrollmentRow.student_id == student_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return bool(result.rowcount)

    async def enrollment_for_student(self, student_id: UUID) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(EnrollmentRow.student_id == student_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    async def enrollments_for_class(self, class_id: UUID) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.class_id == class_id)
            .order_by(EnrollmentRow.enrolled_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def remove_enrollments(self, class_id: UUID) -> int:
        stmt = (
            delete(EnrollmentRow)
            .where(EnrollmentRow.class_id == class_id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0


def _row_to_class(row: ClassRow) -> SchoolClass:
    return SchoolClass(
        id=row.id,
        code=row.code,
        name=row.name,
        teacher_id=row.teacher_id,
        grade=row.grade,
        section=row.section,
        schedule=row.schedule,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        class_id=row.class_id,
        student_id=row.student_id,
        enrolled_at=as_utc(row.enrolled_at),
    )
