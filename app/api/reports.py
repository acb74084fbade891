"""Report snapshots (/v1/reports).

Reports are write-once: there is no update endpoint.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from app.api.dependencies import ReposDep, require_action
from app.api.pagination import Page, PageDep, build_page
from app.api.schemas import ReportOut, report_out
from app.models.principal import Principal
from app.services import report_service
from app.services.access_policy import Action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/reports", tags=["reports"])


class ReportIn(BaseModel):
    snapshot: Any
    class_id: UUID | None = None
    student_id: UUID | None = None


@router.post("", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
async def create_report(
    payload: ReportIn,
    principal: Annotated[Principal, Depends(require_action(Action.REPORT_CREATE))],
    repos: ReposDep,
) -> ReportOut:
    report = await report_service.generate_report(
        repos,
        principal,
        snapshot=payload.snapshot,
        class_id=payload.class_id,
        student_id=payload.student_id,
    )
    return report_out(report)


@router.post(
    "/classes/{class_id}",
    response_model=ReportOut,
    status_code=status.HTTP_201_CREATED,
)
async def snapshot_class(
    class_id: UUID,
    principal: Annotated[
        Principal, Depends(require_action(Action.REPORT_CLASS_SNAPSHOT))
    ],
    repos: ReposDep,
) -> ReportOut:
    """Freeze the current stats of every student enrolled in the class."""
    return report_out(await report_service.snapshot_class(repos, principal, class_id))


@router.get("", response_model=Page[ReportOut])
async def list_reports(
    principal: Annotated[Principal, Depends(require_action(Action.REPORT_LIST))],
    repos: ReposDep,
    paging: PageDep,
    class_id: UUID | None = None,
    student_id: UUID | None = None,
    order: Literal["asc", "desc"] = "desc",
) -> Page[ReportOut]:
    reports, total = await report_service.list_reports(
        repos,
        principal,
        class_id=class_id,
        student_id=student_id,
        descending=order == "desc",
        offset=paging.offset,
        limit=paging.limit,
    )
    return build_page([report_out(r) for r in reports], total, paging)


@router.get("/{report_id}", response_model=ReportOut)
async def get_report(
    report_id: UUID,
    principal: Annotated[Principal, Depends(require_action(Action.REPORT_READ))],
    repos: ReposDep,
) -> ReportOut:
    return report_out(await report_service.get_report(repos, principal, report_id))
