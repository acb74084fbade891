from __future__ import annotations

import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.dependencies import ReposDep, require_action
from app.api.pagination import Page, PageDep, build_page
from app.api.schemas import LessonOut, LevelRefOut, ModuleRefOut, lesson_out
from app.models.curriculum import LessonContext
from app.models.principal import Principal
from app.services import curriculum_service
from app.services.access_policy import Action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/lessons", tags=["curriculum"])

Reader = Annotated[Principal, Depends(require_action(Action.CURRICULUM_READ))]
Writer = Annotated[Principal, Depends(require_action(Action.CURRICULUM_WRITE))]


class LessonIn(BaseModel):
    module_id: UUID
    order: int = Field(ge=1)
    title: str = Field(min_length=1, max_length=500)
    content: Any = None


class LessonPatch(BaseModel):
    module_id: UUID | None = None
    order: int | None = Field(default=None, ge=1)
    title: str | None = Field(default=None, min_length=1, max_length=500)
    content: Any = None


class LessonContextOut(LessonOut):
    module: ModuleRefOut
    level: LevelRefOut


def _with_context(ctx: LessonContext) -> LessonContextOut:
    return LessonContextOut(
        **lesson_out(ctx.lesson).model_dump(),
        module=ModuleRefOut(id=ctx.module.id, slug=ctx.module.slug, title=ctx.module.title),
        level=LevelRefOut(id=ctx.level.id, code=ctx.level.code, name=ctx.level.name),
    )


@router.get("", response_model=Page[LessonContextOut])
async def list_lessons(
    _: Reader,
    repos: ReposDep,
    paging: PageDep,
    module_id: UUID | None = None,
    level_id: UUID | None = None,
) -> Page[LessonContextOut]:
    items, total = await curriculum_service.list_lessons(
        repos,
        module_id=module_id,
        level_id=level_id,
        offset=paging.offset,
        limit=paging.limit,
    )
    return build_page([_with_context(c) for c in items], total, paging)


@router.post("", response_model=LessonOut, status_code=status.HTTP_201_CREATED)
async def create_lesson(payload: LessonIn, principal: Writer, repos: ReposDep) -> LessonOut:
    lesson = await curriculum_service.create_lesson(
        repos,
        principal,
        module_id=payload.module_id,
        order=payload.order,
        title=payload.title,
        content=payload.content,
    )
    return lesson_out(lesson)


@router.get("/{lesson_id}", response_model=LessonContextOut)
async def get_lesson(lesson_id: UUID, _: Reader, repos: ReposDep) -> LessonContextOut:
    return _with_context(await curriculum_service.get_lesson(repos, lesson_id))


@router.patch("/{lesson_id}", response_model=LessonOut)
async def update_lesson(
    lesson_id: UUID, payload: LessonPatch, principal: Writer, repos: ReposDep
) -> LessonOut:
    lesson = await curriculum_service.update_lesson(
        repos, principal, lesson_id, payload.model_dump(exclude_unset=True)
    )
    return lesson_out(lesson)


@router.delete("/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lesson(
    lesson_id: UUID,
    principal: Annotated[Principal, Depends(require_action(Action.LESSON_DELETE))],
    repos: ReposDep,
) -> None:
    """Refused with 400 while any student has progress on the lesson."""
    await curriculum_service.delete_lesson(repos, principal, lesson_id)
