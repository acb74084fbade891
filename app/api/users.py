"""User management (/v1/users).

GET    /v1/users                 admin, paginated, optional ?role=
POST   /v1/users                 admin, any role
POST   /v1/users/students/bulk   admin/teacher, skip-and-report import
GET    /v1/users/{id}            admin/teacher, with classes
PATCH  /v1/users/{id}            self or admin (role: admin only)
DELETE /v1/users/{id}            admin, ?cascade=true to remove references
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import CurrentUser, ReposDep, require_action
from app.api.pagination import Page, PageDep, build_page
from app.api.schemas import UserOut, UserProfileOut, class_out, user_out
from app.models.principal import Principal
from app.services import users_service
from app.services.access_policy import Action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/users", tags=["users"])


class UserCreateIn(BaseModel):
    username: str = Field(min_length=1, max_length=150)
    password: str = Field(min_length=6)
    role: str = "student"
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class UserUpdateIn(BaseModel):
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: str | None = None
    password: str | None = Field(default=None, min_length=6)


class StudentRecordIn(BaseModel):
    username: str
    password: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class BulkStudentsIn(BaseModel):
    students: list[StudentRecordIn] = Field(min_length=1)
    class_id: UUID | None = None


class SkippedOut(BaseModel):
    index: int
    username: str
    reason: str


class BulkStudentsOut(BaseModel):
    created: list[UserOut]
    skipped: list[SkippedOut]


@router.get("", response_model=Page[UserOut])
async def list_users(
    principal: Annotated[Principal, Depends(require_action(Action.USER_LIST))],
    repos: ReposDep,
    paging: PageDep,
    role: str | None = None,
) -> Page[UserOut]:
    users, total = await users_service.list_users(
        repos, principal, role=role, offset=paging.offset, limit=paging.limit
    )
    return build_page([user_out(u) for u in users], total, paging)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreateIn,
    principal: Annotated[Principal, Depends(require_action(Action.USER_CREATE))],
    repos: ReposDep,
) -> UserOut:
    user = await users_service.create_user(
        repos,
        principal,
        username=payload.username,
        password=payload.password,
        role=payload.role,
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    return user_out(user)


@router.post(
    "/students/bulk",
    response_model=BulkStudentsOut,
    status_code=status.HTTP_201_CREATED,
)
async def bulk_create_students(
    payload: BulkStudentsIn,
    principal: Annotated[
        Principal, Depends(require_action(Action.STUDENTS_BULK_CREATE))
    ],
    repos: ReposDep,
) -> BulkStudentsOut:
    records = [
        users_service.StudentRecord(**r.model_dump()) for r in payload.students
    ]
    result = await users_service.bulk_create_students(
        repos, principal, records, class_id=payload.class_id
    )
    return BulkStudentsOut(
        created=[user_out(u) for u in result.created],
        skipped=[
            SkippedOut(index=s.index, username=s.username, reason=s.reason)
            for s in result.skipped
        ],
    )


@router.get("/{user_id}", response_model=UserProfileOut)
async def get_user(
    user_id: UUID,
    principal: Annotated[Principal, Depends(require_action(Action.USER_READ))],
    repos: ReposDep,
) -> UserProfileOut:
    profile = await users_service.get_user(repos, principal, user_id)
    return UserProfileOut(
        **user_out(profile.user).model_dump(),
        classes=[class_out(c) for c in profile.classes],
    )


@router.patch("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: UUID,
    payload: UserUpdateIn,
    principal: CurrentUser,
    repos: ReposDep,
) -> UserOut:
    """Edit a user's profile. Self or admin only."""
    changes = payload.model_dump(exclude_unset=True)
    user = await users_service.update_user(repos, principal, user_id, changes)
    return user_out(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    principal: Annotated[Principal, Depends(require_action(Action.USER_DELETE))],
    repos: ReposDep,
    cascade: Annotated[bool, Query()] = False,
) -> None:
    await users_service.delete_user(repos, principal, user_id, cascade=cascade)
