from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.dependencies import ReposDep, require_action
from app.api.pagination import Page, PageDep, build_page
from app.api.schemas import LessonOut, LevelOut, ModuleOut, lesson_out, level_out, module_out
from app.models.principal import Principal
from app.services import curriculum_service
from app.services.access_policy import Action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/modules", tags=["curriculum"])

Reader = Annotated[Principal, Depends(require_action(Action.CURRICULUM_READ))]
Writer = Annotated[Principal, Depends(require_action(Action.CURRICULUM_WRITE))]


class ModuleIn(BaseModel):
    level_id: UUID
    slug: str = Field(min_length=1, max_length=255)
    title: str = Field(min_length=1, max_length=500)
    order: int = Field(ge=1)


class ModulePatch(BaseModel):
    level_id: UUID | None = None
    slug: str | None = Field(default=None, min_length=1, max_length=255)
    title: str | None = Field(default=None, min_length=1, max_length=500)
    order: int | None = Field(default=None, ge=1)


class ModuleDetailOut(ModuleOut):
    level: LevelOut | None
    lessons: list[LessonOut]


@router.get("", response_model=Page[ModuleOut])
async def list_modules(
    _: Reader,
    repos: ReposDep,
    paging: PageDep,
    level_id: UUID | None = None,
) -> Page[ModuleOut]:
    modules, total = await curriculum_service.list_modules(
        repos, level_id=level_id, offset=paging.offset, limit=paging.limit
    )
    return build_page([module_out(m) for m in modules], total, paging)


@router.post("", response_model=ModuleOut, status_code=status.HTTP_201_CREATED)
async def create_module(payload: ModuleIn, principal: Writer, repos: ReposDep) -> ModuleOut:
    module = await curriculum_service.create_module(
        repos,
        principal,
        level_id=payload.level_id,
        slug=payload.slug,
        title=payload.title,
        order=payload.order,
    )
    return module_out(module)


@router.get("/{module_id}", response_model=ModuleDetailOut)
async def get_module(module_id: UUID, _: Reader, repos: ReposDep) -> ModuleDetailOut:
    """Module with its level and its lessons in display order."""
    item = await curriculum_service.get_module(repos, module_id)
    return ModuleDetailOut(
        **module_out(item.module).model_dump(),
        level=level_out(item.level) if item.level else None,
        lessons=[lesson_out(les) for les in item.lessons],
    )


@router.patch("/{module_id}", response_model=ModuleOut)
async def update_module(
    module_id: UUID, payload: ModulePatch, principal: Writer, repos: ReposDep
) -> ModuleOut:
    module = await curriculum_service.update_module(
        repos, principal, module_id, payload.model_dump(exclude_unset=True)
    )
    return module_out(module)


@router.delete("/{module_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_module(
    module_id: UUID,
    principal: Annotated[Principal, Depends(require_action(Action.MODULE_DELETE))],
    repos: ReposDep,
) -> None:
    await curriculum_service.delete_module(repos, principal, module_id)
