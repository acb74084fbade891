"""Progress ledger and the statistics derived from it.

Write rules for ``record_progress`` (one row per student and lesson):
  - ``completed`` always replaces the stored flag
  - ``score`` replaces the stored score only when the caller sends one
  - ``completed_at`` is stamped on every completing write and kept as is
    on later non-completing writes

Statistics are read from the ledger on every call; nothing is cached.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID

from app.core.metrics import PROGRESS_UPSERTS
from app.models.principal import Principal
from app.models.progress import ProgressDetail, ProgressFilter, ProgressStats, UpsertResult
from app.repos.registry import Repos
from app.services import access_policy
from app.services.access_policy import Action
from app.services.errors import NotFoundError

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 5


def _now() -> datetime:
    return datetime.now(UTC)


async def record_progress(
    repos: Repos,
    principal: Principal,
    lesson_id: UUID,
    *,
    completed: bool | None = None,
    score: float | None = None,
    score_provided: bool = False,
) -> UpsertResult:
    """Upsert the caller's progress on one lesson.

    ``score_provided`` tells an explicit ``score: null`` (clear it) apart
    from a request that does not mention the score at all.
    """
    access_policy.ensure(principal, Action.PROGRESS_RECORD)
    ctx = await repos.curriculum.get_lesson_context(lesson_id)
    if ctx is None:
        raise NotFoundError("Lesson", lesson_id)

    row, created = await repos.progress.upsert(
        principal.user_id,
        lesson_id,
        completed=bool(completed),
        score=score,
        set_score=score_provided or score is not None,
        now=_now(),
    )
    outcome = "created" if created else "updated"
    PROGRESS_UPSERTS.labels(outcome=outcome).inc()
    logger.info(
        "Progress %s student=%s lesson=%s completed=%s score=%s",
        outcome,
        principal.user_id,
        lesson_id,
        row.completed,
        row.score,
    )
    return UpsertResult(detail=ProgressDetail(progress=row, context=ctx), created=created)


async def list_own_progress(
    repos: Repos,
    principal: Principal,
    flt: ProgressFilter,
    *,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[ProgressDetail], int]:
    access_policy.ensure(principal, Action.PROGRESS_READ_OWN)
    return await repos.progress.list_details(
        principal.user_id, flt, offset=offset, limit=limit
    )


async def _require_student(repos: Repos, student_id: UUID) -> None:
    user = await repos.users.get_by_id(student_id)
    if user is None or user.role != "student":
        raise NotFoundError("Student", student_id)


async def list_student_progress(
    repos: Repos,
    principal: Principal,
    student_id: UUID,
    flt: ProgressFilter,
    *,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[ProgressDetail], int]:
    access_policy.ensure(principal, Action.PROGRESS_READ_STUDENT)
    await _require_student(repos, student_id)
    return await repos.progress.list_details(student_id, flt, offset=offset, limit=limit)


async def reset_progress(repos: Repos, principal: Principal, lesson_id: UUID) -> None:
    access_policy.ensure(principal, Action.PROGRESS_RESET)
    if not await repos.progress.delete(principal.user_id, lesson_id):
        raise NotFoundError("Progress")
    logger.info("Progress reset student=%s lesson=%s", principal.user_id, lesson_id)


async def compute_stats(repos: Repos, student_id: UUID) -> ProgressStats:
    """Aggregate one student's ledger.

    total_lessons counts every lesson in the system, not only the lessons
    of the student's level.
    """
    total = await repos.curriculum.count_lessons()
    completed, in_progress = await repos.progress.completion_counts(student_id)
    average = await repos.progress.average_score(student_id)
    recent, _ = await repos.progress.list_details(
        student_id, ProgressFilter(), offset=0, limit=RECENT_ACTIVITY_LIMIT
    )
    percentage = round(completed / total * 100, 2) if total else 0.0
    return ProgressStats(
        student_id=student_id,
        total_lessons=total,
        completed_lessons=completed,
        in_progress_lessons=in_progress,
        completion_percentage=percentage,
        average_score=round(average, 2) if average is not None else None,
        recent_activity=recent,
    )


async def get_own_stats(repos: Repos, principal: Principal) -> ProgressStats:
    access_policy.ensure(principal, Action.PROGRESS_READ_OWN)
    return await compute_stats(repos, principal.user_id)


async def get_student_stats(
    repos: Repos, principal: Principal, student_id: UUID
) -> ProgressStats:
    access_policy.ensure(principal, Action.PROGRESS_READ_STUDENT)
    await _require_student(repos, student_id)
    return await compute_stats(repos, student_id)
