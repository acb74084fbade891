from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.report import Report
from app.repos.memory_store import MemoryStore, paginate


class ReportRepo(Protocol):
    """Write-once store: there is deliberately no update method."""

    async def add(self, report: Report) -> None: ...
    async def get(self, report_id: UUID) -> Report | None: ...
    async def list(
        self,
        *,
        class_id: UUID | None,
        student_id: UUID | None,
        visible_to_teacher: UUID | None,
        descending: bool,
        offset: int,
        limit: int,
    ) -> tuple[list[Report], int]: ...
    async def delete_for_class(self, class_id: UUID) -> int: ...
    async def delete_for_student(self, student_id: UUID) -> int: ...


class InMemoryReportRepo:
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def add(self, report: Report) -> None:
        self._store.reports[report.id] = report

    async def get(self, report_id: UUID) -> Report | None:
        return self._store.reports.get(report_id)

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
        owned: set[UUID] = set()
        if visible_to_teacher is not None:
            owned = {
                c.id
                for c in self._store.classes.values()
                if c.teacher_id == visible_to_teacher
            }

        reports = []
        for r in self._store.reports.values():
            if class_id is not None and r.class_id != class_id:
                continue
            if student_id is not None and r.student_id != student_id:
                continue
            if visible_to_teacher is not None and not (
                r.generated_by == visible_to_teacher or r.class_id in owned
            ):
                continue
            reports.append(r)
        # insertion order is creation order
        if descending:
            reports.reverse()
        return paginate(reports, offset, limit)

    async def delete_for_class(self, class_id: UUID) -> int:
        return self._delete_where(lambda r: r.class_id == class_id)

    async def delete_for_student(self, student_id: UUID) -> int:
        return self._delete_where(lambda r: r.student_id == student_id)

    def _delete_where(self, predicate) -> int:
        doomed = [rid for rid, r in self._store.reports.items() if predicate(r)]
        for rid in doomed:
            del self._store.reports[rid]
        return len(doomed)
