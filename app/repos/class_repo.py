from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from app.models.classroom import Enrollment, SchoolClass
from app.repos.memory_store import MemoryStore, paginate
from app.services.errors import ConflictError

CLASS_MUTABLE_FIELDS = frozenset(
    {"code", "name", "teacher_id", "grade", "section", "schedule"}
)

MSG_CLASS_CODE_TAKEN = "class code already exists"
MSG_ALREADY_ENROLLED = "student is already enrolled in a class"
MSG_CLASS_IN_USE = "class still has enrolled students or reports; delete with cascade=true"


class ClassRepo(Protocol):
    async def add_class(self, school_class: SchoolClass) -> None: ...
    async def get_class(self, class_id: UUID) -> SchoolClass | None: ...
    async def list_classes(
        self,
        *,
        teacher_id: UUID | None,
        grade: str | None,
        offset: int,
        limit: int,
    ) -> tuple[list[SchoolClass], int]: ...
    async def classes_for_teacher(self, teacher_id: UUID) -> list[SchoolClass]: ...
    async def student_counts(self, class_ids: list[UUID]) -> dict[UUID, int]: ...
    async def update_class(
        self, class_id: UUID, changes: dict[str, Any]
    ) -> SchoolClass | None: ...
    async def delete_class(self, class_id: UUID) -> bool: ...

    async def enroll(self, enrollment: Enrollment) -> None: ...
    async def unenroll(self, class_id: UUID, student_id: UUID) -> bool: ...
    async def enrollment_for_student(self, student_id: UUID) -> Enrollment | None: ...
    async def enrollments_for_class(self, class_id: UUID) -> list[Enrollment]: ...
    async def remove_enrollments(self, class_id: UUID) -> int: ...


class InMemoryClassRepo:
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def add_class(self, school_class: SchoolClass) -> None:
        self._check_code(school_class)
        self._store.classes[school_class.id] = school_class

    async def get_class(self, class_id: UUID) -> SchoolClass | None:
        return self._store.classes.get(class_id)

    async def list_classes(
        self,
        *,
        teacher_id: UUID | None,
        grade: str | None,
        offset: int,
        limit: int,
    ) -> tuple[list[SchoolClass], int]:
        classes = [
            c
            for c in reversed(self._store.classes.values())
            if (teacher_id is None or c.teacher_id == teacher_id)
            and (grade is None or c.grade == grade)
        ]
        return paginate(classes, offset, limit)

    async def classes_for_teacher(self, teacher_id: UUID) -> list[SchoolClass]:
        classes = [c for c in self._store.classes.values() if c.teacher_id == teacher_id]
        return sorted(classes, key=lambda c: c.code)

    async def student_counts(self, class_ids: list[UUID]) -> dict[UUID, int]:
        counts = dict.fromkeys(class_ids, 0)
        for e in self._store.enrollments.values():
            if e.class_id in counts:
                counts[e.class_id] += 1
        return counts

    async def update_class(
        self, class_id: UUID, changes: dict[str, Any]
    ) -> SchoolClass | None:
        unknown = set(changes) - CLASS_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update class fields: {sorted(unknown)}")
        current = self._store.classes.get(class_id)
        if current is None:
            return None
        updated = replace(current, **changes, updated_at=datetime.now(UTC))
        self._check_code(updated)
        self._store.classes[class_id] = updated
        return updated

    async def delete_class(self, class_id: UUID) -> bool:
        s = self._store
        if class_id not in s.classes:
            return False
        if any(e.class_id == class_id for e in s.enrollments.values()) or any(
            r.class_id == class_id for r in s.reports.values()
        ):
            raise ConflictError(MSG_CLASS_IN_USE)
        del s.classes[class_id]
        return True

    # --- enrollment ---

    async def enroll(self, enrollment: Enrollment) -> None:
        # Keyed by student: the second enrollment of a student collides here,
        # whichever class it names.
        if enrollment.student_id in self._store.enrollments:
            raise ConflictError(MSG_ALREADY_ENROLLED)
        self._store.enrollments[enrollment.student_id] = enrollment

    async def unenroll(self, class_id: UUID, student_id: UUID) -> bool:
        current = self._store.enrollments.get(student_id)
        if current is None or current.class_id != class_id:
            return False
        del self._store.enrollments[student_id]
        return True

    async def enrollment_for_student(self, student_id: UUID) -> Enrollment | None:
        return self._store.enrollments.get(student_id)

    async def enrollments_for_class(self, class_id: UUID) -> list[Enrollment]:
        rows = [e for e in self._store.enrollments.values() if e.class_id == class_id]
        return sorted(rows, key=lambda e: e.enrolled_at)

    async def remove_enrollments(self, class_id: UUID) -> int:
        doomed = [
            sid for sid, e in self._store.enrollments.items() if e.class_id == class_id
        ]
        for sid in doomed:
            del self._store.enrollments[sid]
        return len(doomed)

    def _check_code(self, school_class: SchoolClass) -> None:
        for other in self._store.classes.values():
            if other.id != school_class.id and other.code == school_class.code:
                raise ConflictError(MSG_CLASS_CODE_TAKEN)
