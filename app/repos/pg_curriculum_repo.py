"""PostgreSQL implementation of CurriculumRepo."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import LessonRow, LevelRow, ModuleRow, ProgressRow
from app.models.curriculum import Lesson, LessonContext, Level, Module
from app.repos.curriculum_repo import (
    LESSON_MUTABLE_FIELDS,
    LEVEL_MUTABLE_FIELDS,
    MODULE_MUTABLE_FIELDS,
    MSG_LESSON_HAS_PROGRESS,
    MSG_LESSON_ORDER_TAKEN,
    MSG_LEVEL_CODE_TAKEN,
    MSG_LEVEL_HAS_MODULES,
    MSG_MODULE_HAS_LESSONS,
    MSG_MODULE_ORDER_TAKEN,
    MSG_MODULE_SLUG_TAKEN,
)
from app.repos.pg_support import as_utc, column_values, count_of, guarded_delete
from app.services.errors import ConflictError


def _module_conflict(exc: IntegrityError) -> str:
    if "slug" in str(exc.orig).lower():
        return MSG_MODULE_SLUG_TAKEN
    return MSG_MODULE_ORDER_TAKEN


class PgCurriculumRepo:
    """Satisfies the CurriculumRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- levels ---

    async def add_level(self, level: Level) -> None:
        self._session.add(
            LevelRow(
                id=level.id,
                code=level.code,
                name=level.name,
                created_at=level.created_at,
                updated_at=level.updated_at,
            )
        )
        await self._flush(MSG_LEVEL_CODE_TAKEN)

    async def get_level(self, level_id: UUID) -> Level | None:
        row = await self._one(select(LevelRow).where(LevelRow.id == level_id))
        return _row_to_level(row) if row is not None else None

    async def list_levels(self, *, offset: int, limit: int) -> tuple[list[Level], int]:
        stmt = select(LevelRow)
        total = await count_of(self._session, stmt)
        rows = (
            await self._session.execute(
                stmt.order_by(LevelRow.code).offset(offset).limit(limit)
            )
        ).scalars().all()
        return [_row_to_level(r) for r in rows], total

    async def update_level(self, level_id: UUID, changes: dict[str, Any]) -> Level | None:
        if not await self._update(LevelRow, level_id, changes, LEVEL_MUTABLE_FIELDS,
                                  lambda _: MSG_LEVEL_CODE_TAKEN):
            return None
        return await self.get_level(level_id)

    async def delete_level(self, level_id: UUID) -> bool:
        stmt = delete(LevelRow).where(
            LevelRow.id == level_id,
            ~exists().where(ModuleRow.level_id == level_id),
        )
        return await guarded_delete(
            self._session, stmt, lambda: self.get_level(level_id), MSG_LEVEL_HAS_MODULES
        )

    # --- modules ---

    async def add_module(self, module: Module) -> None:
        self._session.add(
            ModuleRow(
                id=module.id,
                level_id=module.level_id,
                slug=module.slug,
                title=module.title,
                order=module.order,
                created_at=module.created_at,
                updated_at=module.updated_at,
            )
        )
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise ConflictError(_module_conflict(exc)) from None

    async def get_module(self, module_id: UUID) -> Module | None:
        row = await self._one(select(ModuleRow).where(ModuleRow.id == module_id))
        return _row_to_module(row) if row is not None else None

    async def list_modules(
        self, *, level_id: UUID | None, offset: int, limit: int
    ) -> tuple[list[Module], int]:
        stmt = select(ModuleRow).join(LevelRow, LevelRow.id == ModuleRow.level_id)
        if level_id is not None:
            stmt = stmt.where(ModuleRow.level_id == level_id)
        total = await count_of(self._session, stmt)
        stmt = stmt.order_by(LevelRow.code, ModuleRow.order).offset(offset).limit(limit)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_module(r) for r in rows], total

    async def modules_for_levels(self, level_ids: list[UUID]) -> dict[UUID, list[Module]]:
        out: dict[UUID, list[Module]] = {lid: [] for lid in level_ids}
        if not level_ids:
            return out
        stmt = (
            select(ModuleRow)
            .where(ModuleRow.level_id.in_(level_ids))
            .order_by(ModuleRow.order)
        )
        for row in (await self._session.execute(stmt)).scalars():
            out[row.level_id].append(_row_to_module(row))
        return out

    async def update_module(self, module_id: UUID, changes: dict[str, Any]) -> Module | None:
        if not await self._update(ModuleRow, module_id, changes, MODULE_MUTABLE_FIELDS,
                                  _module_conflict):
            return None
        return await self.get_module(module_id)

    async def delete_module(self, module_id: UUID) -> bool:
        stmt = delete(ModuleRow).where(
            ModuleRow.id == module_id,
            ~exists().where(LessonRow.module_id == module_id),
        )
        return await guarded_delete(
            self._session, stmt, lambda: self.get_module(module_id), MSG_MODULE_HAS_LESSONS
        )

    # --- lessons ---

    async def add_lesson(self, lesson: Lesson) -> None:
        self._session.add(
            LessonRow(
                id=lesson.id,
                module_id=lesson.module_id,
                order=lesson.order,
                title=lesson.title,
                content=lesson.content,
                created_at=lesson.created_at,
                updated_at=lesson.updated_at,
            )
        )
        await self._flush(MSG_LESSON_ORDER_TAKEN)

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        row = await self._one(select(LessonRow).where(LessonRow.id == lesson_id))
        return _row_to_lesson(row) if row is not None else None

    async def get_lesson_context(self, lesson_id: UUID) -> LessonContext | None:
        stmt = _context_select().where(LessonRow.id == lesson_id)
        found = (await self._session.execute(stmt)).one_or_none()
        if found is None:
            return None
        return row_to_context(*found)

    async def list_lessons(
        self,
        *,
        module_id: UUID | None,
        level_id: UUID | None,
        offset: int,
        limit: int,
    ) -> tuple[list[LessonContext], int]:
        stmt = _context_select()
        if module_id is not None:
            stmt = stmt.where(LessonRow.module_id == module_id)
        if level_id is not None:
            stmt = stmt.where(ModuleRow.level_id == level_id)
        total = await count_of(self._session, stmt)
        stmt = (
            stmt.order_by(LevelRow.code, ModuleRow.order, LessonRow.order)
            .offset(offset)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).all()
        return [row_to_context(*r) for r in rows], total

    async def lessons_for_module(self, module_id: UUID) -> list[Lesson]:
        stmt = (
            select(LessonRow)
            .where(LessonRow.module_id == module_id)
            .order_by(LessonRow.order)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson(r) for r in rows]

    async def update_lesson(self, lesson_id: UUID, changes: dict[str, Any]) -> Lesson | None:
        if not await self._update(LessonRow, lesson_id, changes, LESSON_MUTABLE_FIELDS,
                                  lambda _: MSG_LESSON_ORDER_TAKEN):
            return None
        return await self.get_lesson(lesson_id)

    async def delete_lesson(self, lesson_id: UUID) -> bool:
        stmt = delete(LessonRow).where(
            LessonRow.id == lesson_id,
            ~exists().where(ProgressRow.lesson_id == lesson_id),
        )
        return await guarded_delete(
            self._session, stmt, lambda: self.get_lesson(lesson_id), MSG_LESSON_HAS_PROGRESS
        )

    async def count_lessons(self) -> int:
        total = await self._session.scalar(select(func.count()).select_from(LessonRow))
        return int(total or 0)

    # --- helpers ---

    async def _one(self, stmt):
        stmt = stmt.execution_options(populate_existing=True)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def _flush(self, conflict_message: str) -> None:
        try:
            await self._session.flush()
        except IntegrityError:
            raise ConflictError(conflict_message) from None

    async def _update(self, row_cls, row_id, changes, allowed, on_conflict) -> bool:
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"cannot update fields: {sorted(unknown)}")
        stmt = (
            update(row_cls)
            .where(row_cls.id == row_id)
            .values(column_values(row_cls, {**changes, "updated_at": datetime.now(UTC)}))
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self._session.execute(stmt)
        except IntegrityError as exc:
            raise ConflictError(on_conflict(exc)) from None
        return bool(result.rowcount)


def _context_select():
    return (
        select(LessonRow, ModuleRow, LevelRow)
        .join(ModuleRow, ModuleRow.id == LessonRow.module_id)
        .join(LevelRow, LevelRow.id == ModuleRow.level_id)
        .execution_options(populate_existing=True)
    )


def _row_to_level(row: LevelRow) -> Level:
    return Level(
        id=row.id,
        code=row.code,
        name=row.name,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _row_to_module(row: ModuleRow) -> Module:
    return Module(
        id=row.id,
        level_id=row.level_id,
        slug=row.slug,
        title=row.title,
        order=row.order,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _row_to_lesson(row: LessonRow) -> Lesson:
    return Lesson(
        id=row.id,
        module_id=row.module_id,
        order=row.order,
        title=row.title,
        content=row.content,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def row_to_context(lesson: LessonRow, module: ModuleRow, level: LevelRow) -> LessonContext:
    return LessonContext(
        lesson=_row_to_lesson(lesson),
        module=_row_to_module(module),
        level=_row_to_level(level),
    )
