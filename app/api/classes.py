"""Classes and enrollment (/v1/classes).

Teachers manage the classes they own; admins manage any class.  A student
belongs to at most one class at a time: enrolling an already-enrolled
student is refused, so moving a student is unenroll + enroll.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import ReposDep, require_action
from app.api.pagination import Page, PageDep, build_page
from app.api.schemas import ClassOut, UserOut, class_out, user_out
from app.models.principal import Principal
from app.services import class_service
from app.services.access_policy import Action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/classes", tags=["classes"])


class ClassIn(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    teacher_id: UUID | None = None
    grade: str | None = Field(default=None, max_length=64)
    section: str | None = Field(default=None, max_length=64)
    schedule: str | None = Field(default=None, max_length=64)


class ClassPatch(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=64)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    teacher_id: UUID | None = None
    grade: str | None = Field(default=None, max_length=64)
    section: str | None = Field(default=None, max_length=64)
    schedule: str | None = Field(default=None, max_length=64)


class EnrollIn(BaseModel):
    student_id: UUID


class ClassSummaryOut(ClassOut):
    student_count: int


class EnrolledStudentOut(UserOut):
    enrolled_at: datetime


class ClassDetailOut(ClassOut):
    teacher: UserOut | None
    students: list[EnrolledStudentOut]


class EnrollmentOut(BaseModel):
    class_id: UUID
    student_id: UUID
    enrolled_at: datetime


@router.post("", response_model=ClassOut, status_code=status.HTTP_201_CREATED)
async def create_class(
    payload: ClassIn,
    principal: Annotated[Principal, Depends(require_action(Action.CLASS_CREATE))],
    repos: ReposDep,
) -> ClassOut:
    school_class = await class_service.create_class(
        repos, principal, **payload.model_dump()
    )
    return class_out(school_class)


@router.get("", response_model=Page[ClassSummaryOut])
async def list_classes(
    principal: Annotated[Principal, Depends(require_action(Action.CLASS_LIST))],
    repos: ReposDep,
    paging: PageDep,
    teacher_id: UUID | None = None,
    grade: str | None = None,
) -> Page[ClassSummaryOut]:
    """Teachers always get their own classes; ``teacher_id`` is admin-only."""
    items, total = await class_service.list_classes(
        repos,
        principal,
        teacher_id=teacher_id,
        grade=grade,
        offset=paging.offset,
        limit=paging.limit,
    )
    data = [
        ClassSummaryOut(
            **class_out(i.school_class).model_dump(), student_count=i.student_count
        )
        for i in items
    ]
    return build_page(data, total, paging)


@router.get("/{class_id}", response_model=ClassDetailOut)
async def get_class(
    class_id: UUID,
    principal: Annotated[Principal, Depends(require_action(Action.CLASS_READ))],
    repos: ReposDep,
) -> ClassDetailOut:
    detail = await class_service.get_class_detail(repos, principal, class_id)
    return ClassDetailOut(
        **class_out(detail.school_class).model_dump(),
        teacher=user_out(detail.teacher) if detail.teacher else None,
        students=[
            EnrolledStudentOut(**user_out(s.user).model_dump(), enrolled_at=s.enrolled_at)
            for s in detail.students
        ],
    )


@router.patch("/{class_id}", response_model=ClassOut)
async def update_class(
    class_id: UUID,
    payload: ClassPatch,
    principal: Annotated[Principal, Depends(require_action(Action.CLASS_UPDATE))],
    repos: ReposDep,
) -> ClassOut:
    school_class = await class_service.update_class(
        repos, principal, class_id, payload.model_dump(exclude_unset=True)
    )
    return class_out(school_class)


@router.delete("/{class_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_class(
    class_id: UUID,
    principal: Annotated[Principal, Depends(require_action(Action.CLASS_DELETE))],
    repos: ReposDep,
    cascade: Annotated[bool, Query()] = False,
) -> None:
    await class_service.delete_class(repos, principal, class_id, cascade=cascade)


# --- enrollment ---


@router.post(
    "/{class_id}/enroll",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_student(
    class_id: UUID,
    payload: EnrollIn,
    principal: Annotated[
        Principal, Depends(require_action(Action.CLASS_MANAGE_STUDENTS))
    ],
    repos: ReposDep,
) -> EnrollmentOut:
    enrollment = await class_service.enroll(repos, principal, class_id, payload.student_id)
    return EnrollmentOut(
        class_id=enrollment.class_id,
        student_id=enrollment.student_id,
        enrolled_at=enrollment.enrolled_at,
    )


@router.delete(
    "/{class_id}/students/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def unenroll_student(
    class_id: UUID,
    student_id: UUID,
    principal: Annotated[
        Principal, Depends(require_action(Action.CLASS_MANAGE_STUDENTS))
    ],
    repos: ReposDep,
) -> None:
    await class_service.unenroll(repos, principal, class_id, student_id)
