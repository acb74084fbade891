"""Progress ledger endpoints (/v1/progress).

POST /v1/progress is an upsert on (student, lesson): replaying the same
request leaves one row with the same fields, and the response code tells
the client whether the row was new (201) or already there (200).
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from app.api.dependencies import ReposDep, require_action
from app.api.pagination import Page, PageDep, build_page
from app.api.schemas import ProgressOut, StatsOut, progress_out, stats_out
from app.models.principal import Principal
from app.models.progress import ProgressFilter
from app.services import progress_service
from app.services.access_policy import Action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])

Student = Annotated[Principal, Depends(require_action(Action.PROGRESS_READ_OWN))]
Staff = Annotated[Principal, Depends(require_action(Action.PROGRESS_READ_STUDENT))]

SCORE_LIMIT = 999.99


class ProgressIn(BaseModel):
    lesson_id: UUID
    completed: bool | None = None
    # 0-100 expected; the bounds are the NUMERIC(5, 2) column limits
    score: float | None = Field(
        default=None, allow_inf_nan=False, ge=-SCORE_LIMIT, le=SCORE_LIMIT
    )


def progress_filter(
    module_id: UUID | None = None,
    level_id: UUID | None = None,
    completed: bool | None = None,
) -> ProgressFilter:
    return ProgressFilter(module_id=module_id, level_id=level_id, completed=completed)


FilterDep = Annotated[ProgressFilter, Depends(progress_filter)]


# --- POST /v1/progress ----------------------------------------------------


@router.post("", response_model=ProgressOut, status_code=status.HTTP_200_OK)
async def record_progress(
    payload: ProgressIn,
    response: Response,
    principal: Annotated[Principal, Depends(require_action(Action.PROGRESS_RECORD))],
    repos: ReposDep,
) -> ProgressOut:
    result = await progress_service.record_progress(
        repos,
        principal,
        payload.lesson_id,
        completed=payload.completed,
        score=payload.score,
        score_provided="score" in payload.model_fields_set,
    )
    if result.created:
        response.status_code = status.HTTP_201_CREATED
    return progress_out(result.detail)


# --- GET listings ---------------------------------------------------------


@router.get("/me", response_model=Page[ProgressOut])
async def list_my_progress(
    principal: Student, repos: ReposDep, paging: PageDep, flt: FilterDep
) -> Page[ProgressOut]:
    rows, total = await progress_service.list_own_progress(
        repos, principal, flt, offset=paging.offset, limit=paging.limit
    )
    return build_page([progress_out(r) for r in rows], total, paging)


@router.get("/students/{student_id}", response_model=Page[ProgressOut])
async def list_student_progress(
    student_id: UUID,
    principal: Staff,
    repos: ReposDep,
    paging: PageDep,
    flt: FilterDep,
) -> Page[ProgressOut]:
    rows, total = await progress_service.list_student_progress(
        repos, principal, student_id, flt, offset=paging.offset, limit=paging.limit
    )
    return build_page([progress_out(r) for r in rows], total, paging)


# --- stats ----------------------------------------------------------------


@router.get("/stats", response_model=StatsOut)
async def my_stats(principal: Student, repos: ReposDep) -> StatsOut:
    return stats_out(await progress_service.get_own_stats(repos, principal))


@router.get("/stats/{student_id}", response_model=StatsOut)
async def student_stats(student_id: UUID, principal: Staff, repos: ReposDep) -> StatsOut:
    return stats_out(
        await progress_service.get_student_stats(repos, principal, student_id)
    )


# --- DELETE /v1/progress/{lesson_id} -------------------------------------


@router.delete("/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
async def reset_progress(
    lesson_id: UUID,
    principal: Annotated[Principal, Depends(require_action(Action.PROGRESS_RESET))],
    repos: ReposDep,
) -> None:
    await progress_service.reset_progress(repos, principal, lesson_id)
