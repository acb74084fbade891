from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Level:
    id: UUID
    code: str
    name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(*, code: str, name: str) -> Level:
        now = datetime.now(UTC)
        return Level(id=uuid4(), code=code, name=name, created_at=now, updated_at=now)


@dataclass(frozen=True, slots=True)
class Module:
    id: UUID
    level_id: UUID
    slug: str
    title: str
    order: int  # unique within level, >= 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(*, level_id: UUID, slug: str, title: str, order: int) -> Module:
        now = datetime.now(UTC)
        return Module(
            id=uuid4(),
            level_id=level_id,
            slug=slug,
            title=title,
            order=order,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True, slots=True)
class Lesson:
    id: UUID
    module_id: UUID
    order: int  # unique within module, >= 1
    title: str
    # Opaque to the backend; shape depends on lesson type
    # (intro / vocabulary / practice / quiz) and is read by the client only.
    content: Any = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(*, module_id: UUID, order: int, title: str, content: Any = None) -> Lesson:
        now = datetime.now(UTC)
        return Lesson(
            id=uuid4(),
            module_id=module_id,
            order=order,
            title=title,
            content=content,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True, slots=True)
class LessonContext:
    """A lesson with its module and level, for display next to progress."""

    lesson: Lesson
    module: Module
    level: Level
