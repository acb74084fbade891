from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class SchoolClass:
    id: UUID
    code: str
    name: str
    teacher_id: UUID
    grade: str | None = None
    section: str | None = None
    schedule: str | None = None  # morning|afternoon|... free text
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(
        *,
        code: str,
        name: str,
        teacher_id: UUID,
        grade: str | None = None,
        section: str | None = None,
        schedule: str | None = None,
    ) -> SchoolClass:
        now = datetime.now(UTC)
        return SchoolClass(
            id=uuid4(),
            code=code,
            name=name,
            teacher_id=teacher_id,
            grade=grade,
            section=section,
            schedule=schedule,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True, slots=True)
class Enrollment:
    """Class membership. A student appears in at most one row system-wide."""

    class_id: UUID
    student_id: UUID
    enrolled_at: datetime

    @staticmethod
    def new(*, class_id: UUID, student_id: UUID) -> Enrollment:
        return Enrollment(
            class_id=class_id, student_id=student_id, enrolled_at=datetime.now(UTC)
        )
