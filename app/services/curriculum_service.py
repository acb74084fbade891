"""Levels, modules and lessons.

Order values are never renumbered: a collision on (level, order),
(level, slug) or (module, order) is a ConflictError raised by the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from app.models.curriculum import Lesson, LessonContext, Level, Module
from app.models.principal import Principal
from app.repos.registry import Repos
from app.services import access_policy
from app.services.access_policy import Action
from app.services.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LevelWithModules:
    level: Level
    modules: list[Module]


@dataclass(frozen=True, slots=True)
class ModuleWithLessons:
    module: Module
    level: Level | None
    lessons: list[Lesson]


def _require_text(changes: dict[str, Any], *keys: str) -> None:
    for key in keys:
        if key in changes:
            value = (changes[key] or "").strip()
            if not value:
                raise InvalidInputError(f"{key} must be non-empty")
            changes[key] = value


def _require_order(changes: dict[str, Any]) -> None:
    if "order" in changes and (changes["order"] is None or changes["order"] < 1):
        raise InvalidInputError("order must be >= 1")


# --- levels ---


async def create_level(repos: Repos, principal: Principal, *, code: str, name: str) -> Level:
    access_policy.ensure(principal, Action.LEVEL_WRITE)
    fields = {"code": code, "name": name}
    _require_text(fields, "code", "name")
    level = Level.new(**fields)
    await repos.curriculum.add_level(level)
    logger.info("Level created id=%s code=%s", level.id, level.code)
    return level


async def list_levels(
    repos: Repos, *, offset: int = 0, limit: int = 10
) -> tuple[list[LevelWithModules], int]:
    levels, total = await repos.curriculum.list_levels(offset=offset, limit=limit)
    modules = await repos.curriculum.modules_for_levels([lv.id for lv in levels])
    return [LevelWithModules(lv, modules.get(lv.id, [])) for lv in levels], total


async def get_level(repos: Repos, level_id: UUID) -> LevelWithModules:
    level = await repos.curriculum.get_level(level_id)
    if level is None:
        raise NotFoundError("Level", level_id)
    modules = await repos.curriculum.modules_for_levels([level_id])
    return LevelWithModules(level, modules.get(level_id, []))


async def update_level(
    repos: Repos, principal: Principal, level_id: UUID, changes: dict[str, Any]
) -> Level:
    access_policy.ensure(principal, Action.LEVEL_WRITE)
    _require_text(changes, "code", "name")
    level = await repos.curriculum.update_level(level_id, changes)
    if level is None:
        raise NotFoundError("Level", level_id)
    logger.info("Level updated id=%s fields=%s", level_id, sorted(changes))
    return level


async def delete_level(repos: Repos, principal: Principal, level_id: UUID) -> None:
    access_policy.ensure(principal, Action.LEVEL_WRITE)
    if not await repos.curriculum.delete_level(level_id):
        raise NotFoundError("Level", level_id)
    logger.info("Level deleted id=%s", level_id)


# --- modules ---


async def create_module(
    repos: Repos,
    principal: Principal,
    *,
    level_id: UUID,
    slug: str,
    title: str,
    order: int,
) -> Module:
    access_policy.ensure(principal, Action.CURRICULUM_WRITE)
    fields: dict[str, Any] = {"slug": slug, "title": title, "order": order}
    _require_text(fields, "slug", "title")
    _require_order(fields)
    if await repos.curriculum.get_level(level_id) is None:
        raise NotFoundError("Level", level_id)
    module = Module.new(level_id=level_id, **fields)
    await repos.curriculum.add_module(module)
    logger.info(
        "Module created id=%s level=%s slug=%s order=%d",
        module.id,
        level_id,
        module.slug,
        module.order,
    )
    return module


async def list_modules(
    repos: Repos, *, level_id: UUID | None = None, offset: int = 0, limit: int = 10
) -> tuple[list[Module], int]:
    return await repos.curriculum.list_modules(level_id=level_id, offset=offset, limit=limit)


async def get_module(repos: Repos, module_id: UUID) -> ModuleWithLessons:
    module = await repos.curriculum.get_module(module_id)
    if module is None:
        raise NotFoundError("Module", module_id)
    return ModuleWithLessons(
        module=module,
        level=await repos.curriculum.get_level(module.level_id),
        lessons=await repos.curriculum.lessons_for_module(module_id),
    )


async def update_module(
    repos: Repos, principal: Principal, module_id: UUID, changes: dict[str, Any]
) -> Module:
    access_policy.ensure(principal, Action.CURRICULUM_WRITE)
    _require_text(changes, "slug", "title")
    _require_order(changes)
    if "level_id" in changes and await repos.curriculum.get_level(changes["level_id"]) is None:
        raise NotFoundError("Level", changes["level_id"])
    module = await repos.curriculum.update_module(module_id, changes)
    if module is None:
        raise NotFoundError("Module", module_id)
    logger.info("Module updated id=%s fields=%s", module_id, sorted(changes))
    return module


async def delete_module(repos: Repos, principal: Principal, module_id: UUID) -> None:
    access_policy.ensure(principal, Action.MODULE_DELETE)
    if not await repos.curriculum.delete_module(module_id):
        raise NotFoundError("Module", module_id)
    logger.info("Module deleted id=%s", module_id)


# --- lessons ---


async def create_lesson(
    repos: Repos,
    principal: Principal,
    *,
    module_id: UUID,
    order: int,
    title: str,
    content: Any = None,
) -> Lesson:
    access_policy.ensure(principal, Action.CURRICULUM_WRITE)
    fields: dict[str, Any] = {"order": order, "title": title}
    _require_text(fields, "title")
    _require_order(fields)
    if await repos.curriculum.get_module(module_id) is None:
        raise NotFoundError("Module", module_id)
    lesson = Lesson.new(module_id=module_id, content=content, **fields)
    await repos.curriculum.add_lesson(lesson)
    logger.info(
        "Lesson created id=%s module=%s order=%d", lesson.id, module_id, lesson.order
    )
    return lesson


async def list_lessons(
    repos: Repos,
    *,
    module_id: UUID | None = None,
    level_id: UUID | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[LessonContext], int]:
    return await repos.curriculum.list_lessons(
        module_id=module_id, level_id=level_id, offset=offset, limit=limit
    )


async def get_lesson(repos: Repos, lesson_id: UUID) -> LessonContext:
    ctx = await repos.curriculum.get_lesson_context(lesson_id)
    if ctx is None:
        raise NotFoundError("Lesson", lesson_id)
    return ctx


async def update_lesson(
    repos: Repos, principal: Principal, lesson_id: UUID, changes: dict[str, Any]
) -> Lesson:
    access_policy.ensure(principal, Action.CURRICULUM_WRITE)
    _require_text(changes, "title")
    _require_order(changes)
    if "module_id" in changes and await repos.curriculum.get_module(changes["module_id"]) is None:
        raise NotFoundError("Module", changes["module_id"])
    lesson = await repos.curriculum.update_lesson(lesson_id, changes)
    if lesson is None:
        raise NotFoundError("Lesson", lesson_id)
    logger.info("Lesson updated id=%s fields=%s", lesson_id, sorted(changes))
    return lesson


async def delete_lesson(repos: Repos, principal: Principal, lesson_id: UUID) -> None:
    """Refused with ConflictError while any progress row points at the lesson."""
    access_policy.ensure(principal, Action.LESSON_DELETE)
    if not await repos.curriculum.delete_lesson(lesson_id):
        raise NotFoundError("Lesson", lesson_id)
    logger.info("Lesson deleted id=%s", lesson_id)
