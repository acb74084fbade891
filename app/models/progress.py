from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from app.models.curriculum import LessonContext


@dataclass(frozen=True, slots=True)
class Progress:
    """One row per (student, lesson): the progress ledger.

    State per pair: no row (not started) → completed=False (in progress)
    → completed=True with completed_at set.
    """

    student_id: UUID
    lesson_id: UUID
    created_at: datetime
    updated_at: datetime
    completed: bool = False
    score: float | None = None
    completed_at: datetime | None = None

    @staticmethod
    def new(
        *,
        student_id: UUID,
        lesson_id: UUID,
        completed: bool = False,
        score: float | None = None,
        now: datetime | None = None,
    ) -> Progress:
        now = now or datetime.now(UTC)
        return Progress(
            student_id=student_id,
            lesson_id=lesson_id,
            created_at=now,
            updated_at=now,
            completed=completed,
            score=score,
            completed_at=now if completed else None,
        )

    @property
    def status(self) -> str:
        return "completed" if self.completed else "in_progress"


@dataclass(frozen=True, slots=True)
class ProgressDetail:
    """A progress row enriched with lesson/module/level context."""

    progress: Progress
    context: LessonContext


@dataclass(frozen=True, slots=True)
class ProgressFilter:
    module_id: UUID | None = None
    level_id: UUID | None = None
    completed: bool | None = None


@dataclass(frozen=True, slots=True)
class UpsertResult:
    detail: ProgressDetail
    created: bool


@dataclass(frozen=True, slots=True)
class ProgressStats:
    """Aggregates derived from the ledger at read time; never stored."""

    student_id: UUID
    total_lessons: int
    completed_lessons: int
    in_progress_lessons: int
    completion_percentage: float
    average_score: float | None
    recent_activity: list[ProgressDetail] = field(default_factory=list)
