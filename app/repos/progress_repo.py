"""Progress ledger repository.

One row per (student, lesson).  ``upsert`` is the only write path for
progress and is atomic in both implementations: the in-memory version runs
without awaiting, the SQL version is a single INSERT ... ON CONFLICT DO
UPDATE keyed on the composite primary key.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Protocol
from uuid import UUID

from app.models.curriculum import LessonContext
from app.models.progress import Progress, ProgressDetail, ProgressFilter
from app.repos.memory_store import MemoryStore, paginate


class ProgressRepo(Protocol):
    async def upsert(
        self,
        student_id: UUID,
        lesson_id: UUID,
        *,
        completed: bool,
        score: float | None,
        set_score: bool,
        now: datetime,
    ) -> tuple[Progress, bool]: ...
    async def get(self, student_id: UUID, lesson_id: UUID) -> Progress | None: ...
    async def list_details(
        self,
        student_id: UUID,
        flt: ProgressFilter,
        *,
        offset: int,
        limit: int,
    ) -> tuple[list[ProgressDetail], int]: ...
    async def delete(self, student_id: UUID, lesson_id: UUID) -> bool: ...
    async def completion_counts(self, student_id: UUID) -> tuple[int, int]: ...
    async def average_score(self, student_id: UUID) -> float | None: ...
    async def delete_for_student(self, student_id: UUID) -> int: ...


class InMemoryProgressRepo:
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

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
        key = (student_id, lesson_id)
        current = self._store.progress.pop(key, None)
        if current is None:
            row = Progress.new(
                student_id=student_id,
                lesson_id=lesson_id,
                completed=completed,
                score=score if set_score else None,
                now=now,
            )
        else:
            row = replace(
                current,
                completed=completed,
                score=score if set_score else current.score,
                completed_at=now if completed else current.completed_at,
                updated_at=now,
            )
        # re-inserted so dict order tracks the latest write
        self._store.progress[key] = row
        return row, current is None

    async def get(self, student_id: UUID, lesson_id: UUID) -> Progress | None:
        return self._store.progress.get((student_id, lesson_id))

    async def list_details(
        self,
        student_id: UUID,
        flt: ProgressFilter,
        *,
        offset: int,
        limit: int,
    ) -> tuple[list[ProgressDetail], int]:
        details = []
        for (sid, _), row in reversed(self._store.progress.items()):
            if sid != student_id:
                continue
            if flt.completed is not None and row.completed != flt.completed:
                continue
            ctx = self._context(row.lesson_id)
            if flt.module_id is not None and ctx.module.id != flt.module_id:
                continue
            if flt.level_id is not None and ctx.level.id != flt.level_id:
                continue
            details.append(ProgressDetail(progress=row, context=ctx))
        details.sort(key=lambda d: d.progress.updated_at, reverse=True)
        return paginate(details, offset, limit)

    async def delete(self, student_id: UUID, lesson_id: UUID) -> bool:
        return self._store.progress.pop((student_id, lesson_id), None) is not None

    async def completion_counts(self, student_id: UUID) -> tuple[int, int]:
        completed = in_progress = 0
        for (sid, _), row in self._store.progress.items():
            if sid != student_id:
                continue
            if row.completed:
                completed += 1
            else:
                in_progress += 1
        return completed, in_progress

    async def average_score(self, student_id: UUID) -> float | None:
        scores = [
            row.score
            for (sid, _), row in self._store.progress.items()
            if sid == student_id and row.score is not None
        ]
        if not scores:
            return None
        return sum(scores) / len(scores)

    async def delete_for_student(self, student_id: UUID) -> int:
        doomed = [key for key in self._store.progress if key[0] == student_id]
        for key in doomed:
            del self._store.progress[key]
        return len(doomed)

    def _context(self, lesson_id: UUID) -> LessonContext:
        lesson = self._store.lessons[lesson_id]
        module = self._store.modules[lesson.module_id]
        level = self._store.levels[module.level_id]
        return LessonContext(lesson=lesson, module=module, level=level)
