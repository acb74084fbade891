"""Curriculum repository: levels, modules and lessons.

Uniqueness (level code, module slug/order per level, lesson order per
module) is enforced inside the write call, and deletes refuse to remove a
row that still has children or progress.  Both raise ConflictError.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from app.models.curriculum import Lesson, LessonContext, Level, Module
from app.repos.memory_store import MemoryStore, paginate
from app.services.errors import ConflictError

LEVEL_MUTABLE_FIELDS = frozenset({"code", "name"})
MODULE_MUTABLE_FIELDS = frozenset({"level_id", "slug", "title", "order"})
LESSON_MUTABLE_FIELDS = frozenset({"module_id", "order", "title", "content"})

MSG_LEVEL_CODE_TAKEN = "level code already exists"
MSG_MODULE_SLUG_TAKEN = "module slug already exists in this level"
MSG_MODULE_ORDER_TAKEN = "module order already exists in this level"
MSG_LESSON_ORDER_TAKEN = "lesson order already exists in this module"
MSG_LEVEL_HAS_MODULES = "level still has modules"
MSG_MODULE_HAS_LESSONS = "module still has lessons"
MSG_LESSON_HAS_PROGRESS = "lesson has student progress and cannot be deleted"


class CurriculumRepo(Protocol):
    # levels
    async def add_level(self, level: Level) -> None: ...
    async def get_level(self, level_id: UUID) -> Level | None: ...
    async def list_levels(self, *, offset: int, limit: int) -> tuple[list[Level], int]: ...
    async def update_level(self, level_id: UUID, changes: dict[str, Any]) -> Level | None: ...
    async def delete_level(self, level_id: UUID) -> bool: ...

    # modules
    async def add_module(self, module: Module) -> None: ...
    async def get_module(self, module_id: UUID) -> Module | None: ...
    async def list_modules(
        self, *, level_id: UUID | None, offset: int, limit: int
    ) -> tuple[list[Module], int]: ...
    async def modules_for_levels(self, level_ids: list[UUID]) -> dict[UUID, list[Module]]: ...
    async def update_module(self, module_id: UUID, changes: dict[str, Any]) -> Module | None: ...
    async def delete_module(self, module_id: UUID) -> bool: ...

    # lessons
    async def add_lesson(self, lesson: Lesson) -> None: ...
    async def get_lesson(self, lesson_id: UUID) -> Lesson | None: ...
    async def get_lesson_context(self, lesson_id: UUID) -> LessonContext | None: ...
    async def list_lessons(
        self,
        *,
        module_id: UUID | None,
        level_id: UUID | None,
        offset: int,
        limit: int,
    ) -> tuple[list[LessonContext], int]: ...
    async def lessons_for_module(self, module_id: UUID) -> list[Lesson]: ...
    async def update_lesson(self, lesson_id: UUID, changes: dict[str, Any]) -> Lesson | None: ...
    async def delete_lesson(self, lesson_id: UUID) -> bool: ...
    async def count_lessons(self) -> int: ...


def _check_fields(changes: dict[str, Any], allowed: frozenset[str], entity: str) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"cannot update {entity} fields: {sorted(unknown)}")


class InMemoryCurriculumRepo:
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    # --- levels ---

    async def add_level(self, level: Level) -> None:
        self._check_level(level)
        self._store.levels[level.id] = level

    async def get_level(self, level_id: UUID) -> Level | None:
        return self._store.levels.get(level_id)

    async def list_levels(self, *, offset: int, limit: int) -> tuple[list[Level], int]:
        levels = sorted(self._store.levels.values(), key=lambda lv: lv.code)
        return paginate(levels, offset, limit)

    async def update_level(self, level_id: UUID, changes: dict[str, Any]) -> Level | None:
        _check_fields(changes, LEVEL_MUTABLE_FIELDS, "level")
        current = self._store.levels.get(level_id)
        if current is None:
            return None
        updated = replace(current, **changes, updated_at=datetime.now(UTC))
        self._check_level(updated)
        self._store.levels[level_id] = updated
        return updated

    async def delete_level(self, level_id: UUID) -> bool:
        if level_id not in self._store.levels:
            return False
        if any(m.level_id == level_id for m in self._store.modules.values()):
            raise ConflictError(MSG_LEVEL_HAS_MODULES)
        del self._store.levels[level_id]
        return True

    # --- modules ---

    async def add_module(self, module: Module) -> None:
        self._check_module(module)
        self._store.modules[module.id] = module

    async def get_module(self, module_id: UUID) -> Module | None:
        return self._store.modules.get(module_id)

    async def list_modules(
        self, *, level_id: UUID | None, offset: int, limit: int
    ) -> tuple[list[Module], int]:
        modules = [
            m
            for m in self._store.modules.values()
            if level_id is None or m.level_id == level_id
        ]
        modules.sort(key=self._module_sort_key)
        return paginate(modules, offset, limit)

    async def modules_for_levels(self, level_ids: list[UUID]) -> dict[UUID, list[Module]]:
        wanted = set(level_ids)
        out: dict[UUID, list[Module]] = {lid: [] for lid in level_ids}
        for m in sorted(self._store.modules.values(), key=lambda m: m.order):
            if m.level_id in wanted:
                out[m.level_id].append(m)
        return out

    async def update_module(self, module_id: UUID, changes: dict[str, Any]) -> Module | None:
        _check_fields(changes, MODULE_MUTABLE_FIELDS, "module")
        current = self._store.modules.get(module_id)
        if current is None:
            return None
        updated = replace(current, **changes, updated_at=datetime.now(UTC))
        self._check_module(updated)
        self._store.modules[module_id] = updated
        return updated

    async def delete_module(self, module_id: UUID) -> bool:
        if module_id not in self._store.modules:
            return False
        if any(les.module_id == module_id for les in self._store.lessons.values()):
            raise ConflictError(MSG_MODULE_HAS_LESSONS)
        del self._store.modules[module_id]
        return True

    # --- lessons ---

    async def add_lesson(self, lesson: Lesson) -> None:
        self._check_lesson(lesson)
        self._store.lessons[lesson.id] = lesson

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        return self._store.lessons.get(lesson_id)

    async def get_lesson_context(self, lesson_id: UUID) -> LessonContext | None:
        lesson = self._store.lessons.get(lesson_id)
        if lesson is None:
            return None
        return self._context(lesson)

    async def list_lessons(
        self,
        *,
        module_id: UUID | None,
        level_id: UUID | None,
        offset: int,
        limit: int,
    ) -> tuple[list[LessonContext], int]:
        contexts = []
        for lesson in self._store.lessons.values():
            ctx = self._context(lesson)
            if module_id is not None and ctx.module.id != module_id:
                continue
            if level_id is not None and ctx.level.id != level_id:
                continue
            contexts.append(ctx)
        contexts.sort(
            key=lambda c: (c.level.code, c.module.order, c.lesson.order)
        )
        return paginate(contexts, offset, limit)

    async def lessons_for_module(self, module_id: UUID) -> list[Lesson]:
        lessons = [
            les for les in self._store.lessons.values() if les.module_id == module_id
        ]
        return sorted(lessons, key=lambda les: les.order)

    async def update_lesson(self, lesson_id: UUID, changes: dict[str, Any]) -> Lesson | None:
        _check_fields(changes, LESSON_MUTABLE_FIELDS, "lesson")
        current = self._store.lessons.get(lesson_id)
        if current is None:
            return None
        updated = replace(current, **changes, updated_at=datetime.now(UTC))
        self._check_lesson(updated)
        self._store.lessons[lesson_id] = updated
        return updated

    async def delete_lesson(self, lesson_id: UUID) -> bool:
        if lesson_id not in self._store.lessons:
            return False
        if any(lid == lesson_id for _, lid in self._store.progress):
            raise ConflictError(MSG_LESSON_HAS_PROGRESS)
        del self._store.lessons[lesson_id]
        return True

    async def count_lessons(self) -> int:
        return len(self._store.lessons)

    # --- helpers ---

    def _context(self, lesson: Lesson) -> LessonContext:
        module = self._store.modules[lesson.module_id]
        level = self._store.levels[module.level_id]
        return LessonContext(lesson=lesson, module=module, level=level)

    def _module_sort_key(self, m: Module) -> tuple[str, int]:
        level = self._store.levels.get(m.level_id)
        return (level.code if level else "", m.order)

    def _check_level(self, level: Level) -> None:
        for other in self._store.levels.values():
            if other.id != level.id and other.code == level.code:
                raise ConflictError(MSG_LEVEL_CODE_TAKEN)

    def _check_module(self, module: Module) -> None:
        for other in self._store.modules.values():
            if other.id == module.id or other.level_id != module.level_id:
                continue
            if other.slug == module.slug:
                raise ConflictError(MSG_MODULE_SLUG_TAKEN)
            if other.order == module.order:
                raise ConflictError(MSG_MODULE_ORDER_TAKEN)

    def _check_lesson(self, lesson: Lesson) -> None:
        for other in self._store.lessons.values():
            if (
                other.id != lesson.id
                and other.module_id == lesson.module_id
                and other.order == lesson.order
            ):
                raise ConflictError(MSG_LESSON_ORDER_TAKEN)
