from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.dependencies import ReposDep, require_action
from app.api.pagination import Page, PageDep, build_page
from app.api.schemas import LevelOut, ModuleOut, level_out, module_out
from app.models.principal import Principal
from app.services import curriculum_service
from app.services.access_policy import Action
from app.services.curriculum_service import LevelWithModules

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/levels", tags=["curriculum"])

Reader = Annotated[Principal, Depends(require_action(Action.CURRICULUM_READ))]
Writer = Annotated[Principal, Depends(require_action(Action.LEVEL_WRITE))]


class LevelIn(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=255)


class LevelPatch(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=32)
    name: str | None = Field(default=None, min_length=1, max_length=255)


class LevelDetailOut(LevelOut):
    modules: list[ModuleOut]


def _detail(item: LevelWithModules) -> LevelDetailOut:
    return LevelDetailOut(
        **level_out(item.level).model_dump(),
        modules=[module_out(m) for m in item.modules],
    )


@router.get("", response_model=Page[LevelDetailOut])
async def list_levels(_: Reader, repos: ReposDep, paging: PageDep) -> Page[LevelDetailOut]:
    items, total = await curriculum_service.list_levels(
        repos, offset=paging.offset, limit=paging.limit
    )
    return build_page([_detail(i) for i in items], total, paging)


@router.post("", response_model=LevelOut, status_code=status.HTTP_201_CREATED)
async def create_level(payload: LevelIn, principal: Writer, repos: ReposDep) -> LevelOut:
    level = await curriculum_service.create_level(
        repos, principal, code=payload.code, name=payload.name
    )
    return level_out(level)


@router.get("/{level_id}", response_model=LevelDetailOut)
async def get_level(level_id: UUID, _: Reader, repos: ReposDep) -> LevelDetailOut:
    return _detail(await curriculum_service.get_level(repos, level_id))


@router.patch("/{level_id}", response_model=LevelOut)
async def update_level(
    level_id: UUID, payload: LevelPatch, principal: Writer, repos: ReposDep
) -> LevelOut:
    level = await curriculum_service.update_level(
        repos, principal, level_id, payload.model_dump(exclude_unset=True)
    )
    return level_out(level)


@router.delete("/{level_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_level(level_id: UUID, principal: Writer, repos: ReposDep) -> None:
    await curriculum_service.delete_level(repos, principal, level_id)
