"""Response models shared by several routers, plus their converters."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from app.models.classroom import SchoolClass
from app.models.curriculum import Lesson, LessonContext, Level, Module
from app.models.progress import ProgressDetail, ProgressStats
from app.models.report import Report
from app.models.user import User


class UserOut(BaseModel):
    id: UUID
    username: str
    email: str | None
    role: str
    first_name: str | None
    last_name: str | None
    created_at: datetime | None


def user_out(u: User) -> UserOut:
    return UserOut(
        id=u.id,
        username=u.username,
        email=u.email,
        role=u.role,
        first_name=u.first_name,
        last_name=u.last_name,
        created_at=u.created_at,
    )


class ClassOut(BaseModel):
    id: UUID
    code: str
    name: str
    teacher_id: UUID
    grade: str | None
    section: str | None
    schedule: str | None
    created_at: datetime | None


def class_out(c: SchoolClass) -> ClassOut:
    return ClassOut(
        id=c.id,
        code=c.code,
        name=c.name,
        teacher_id=c.teacher_id,
        grade=c.grade,
        section=c.section,
        schedule=c.schedule,
        created_at=c.created_at,
    )


class UserProfileOut(UserOut):
    classes: list[ClassOut]


class LevelOut(BaseModel):
    id: UUID
    code: str
    name: str


def level_out(lv: Level) -> LevelOut:
    return LevelOut(id=lv.id, code=lv.code, name=lv.name)


class ModuleOut(BaseModel):
    id: UUID
    level_id: UUID
    slug: str
    title: str
    order: int


def module_out(m: Module) -> ModuleOut:
    return ModuleOut(id=m.id, level_id=m.level_id, slug=m.slug, title=m.title, order=m.order)


class LessonOut(BaseModel):
    id: UUID
    module_id: UUID
    order: int
    title: str
    content: Any = None


def lesson_out(les: Lesson) -> LessonOut:
    return LessonOut(
        id=les.id,
        module_id=les.module_id,
        order=les.order,
        title=les.title,
        content=les.content,
    )


class LessonRefOut(BaseModel):
    id: UUID
    title: str
    order: int


class ModuleRefOut(BaseModel):
    id: UUID
    slug: str
    title: str


class LevelRefOut(BaseModel):
    id: UUID
    code: str
    name: str


class ProgressOut(BaseModel):
    student_id: UUID
    lesson_id: UUID
    completed: bool
    status: str
    score: float | None
    completed_at: datetime | None
    updated_at: datetime | None
    lesson: LessonRefOut
    module: ModuleRefOut
    level: LevelRefOut


def progress_out(d: ProgressDetail) -> ProgressOut:
    p, ctx = d.progress, d.context
    return ProgressOut(
        student_id=p.student_id,
        lesson_id=p.lesson_id,
        completed=p.completed,
        status=p.status,
        score=p.score,
        completed_at=p.completed_at,
        updated_at=p.updated_at,
        lesson=_lesson_ref(ctx),
        module=ModuleRefOut(id=ctx.module.id, slug=ctx.module.slug, title=ctx.module.title),
        level=LevelRefOut(id=ctx.level.id, code=ctx.level.code, name=ctx.level.name),
    )


def _lesson_ref(ctx: LessonContext) -> LessonRefOut:
    return LessonRefOut(id=ctx.lesson.id, title=ctx.lesson.title, order=ctx.lesson.order)


class StatsOut(BaseModel):
    student_id: UUID
    total_lessons: int
    completed_lessons: int
    in_progress_lessons: int
    completion_percentage: float
    average_score: float | None
    recent_activity: list[ProgressOut]


def stats_out(s: ProgressStats) -> StatsOut:
    return StatsOut(
        student_id=s.student_id,
        total_lessons=s.total_lessons,
        completed_lessons=s.completed_lessons,
        in_progress_lessons=s.in_progress_lessons,
        completion_percentage=s.completion_percentage,
        average_score=s.average_score,
        recent_activity=[progress_out(d) for d in s.recent_activity],
    )


class ReportOut(BaseModel):
    id: UUID
    class_id: UUID | None
    student_id: UUID | None
    snapshot: Any
    generated_by: UUID | None
    created_at: datetime


def report_out(r: Report) -> ReportOut:
    return ReportOut(
        id=r.id,
        class_id=r.class_id,
        student_id=r.student_id,
        snapshot=r.snapshot,
        generated_by=r.generated_by,
        created_at=r.created_at,
    )
