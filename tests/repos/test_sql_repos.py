"""SQL repositories against an in-memory SQLite database (aiosqlite).

Each test builds its own engine and schema, so tests stay independent.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import app.db.tables  # noqa: F401  (registers the tables on Base.metadata)
from app.db.engine import Base, build_engine, build_session_factory
from app.models.classroom import Enrollment, SchoolClass
from app.models.curriculum import Lesson, Level, Module
from app.models.progress import ProgressFilter
from app.models.report import Report
from app.models.user import User
from app.repos.pg_class_repo import _enrollment_conflict
from app.repos.registry import sql_repos
from app.services.errors import ConflictError, NotFoundError

Factory = async_sessionmaker[AsyncSession]

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _enforce_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _run(
    scenario: Callable[[Factory], Awaitable[None]], *, foreign_keys: bool = False
) -> None:
    async def _main() -> None:
        engine = build_engine("sqlite+aiosqlite://")
        if foreign_keys:
            event.listen(engine.sync_engine, "connect", _enforce_foreign_keys)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        try:
            await scenario(build_session_factory(engine))
        finally:
            await engine.dispose()

    asyncio.run(_main())


async def _seed_lesson(factory: Factory) -> tuple[User, Lesson]:
    student = User.new(username="leo", password_hash="x", role="student")
    level = Level.new(code="A1", name="Beginner")
    module = Module.new(level_id=level.id, slug="greetings", title="Greetings", order=1)
    lesson = Lesson.new(module_id=module.id, order=1, title="Hello")
    async with factory() as session:
        repos = sql_repos(session)
        await repos.users.add(student)
        await repos.curriculum.add_level(level)
        await repos.curriculum.add_module(module)
        await repos.curriculum.add_lesson(lesson)
        await session.commit()
    return student, lesson


def test_progress_upsert_creates_then_updates() -> None:
    async def scenario(factory: Factory) -> None:
        student, lesson = await _seed_lesson(factory)

        async with factory() as session:
            repo = sql_repos(session).progress
            row, created = await repo.upsert(
                student.id, lesson.id, completed=True, score=80.0, set_score=True, now=T0
            )
            assert created is True
            assert row.completed_at == T0

            later = T0 + timedelta(minutes=5)
            row, created = await repo.upsert(
                student.id, lesson.id, completed=False, score=None, set_score=False, now=later
            )
            assert created is False
            assert row.completed is False
            assert row.score == 80.0
            assert row.completed_at == T0
            assert row.updated_at == later
            await session.commit()

        async with factory() as session:
            details, total = await sql_repos(session).progress.list_details(
                student.id, ProgressFilter(), offset=0, limit=20
            )
            assert total == 1
            assert details[0].context.lesson.title == "Hello"

    _run(scenario)


def test_progress_replay_in_same_instant_is_an_update() -> None:
    async def scenario(factory: Factory) -> None:
        student, lesson = await _seed_lesson(factory)
        async with factory() as session:
            repo = sql_repos(session).progress
            _, created = await repo.upsert(
                student.id, lesson.id, completed=True, score=90.0, set_score=True, now=T0
            )
            assert created is True
            row, created = await repo.upsert(
                student.id, lesson.id, completed=True, score=90.0, set_score=True, now=T0
            )
            assert created is False
            assert row.created_at == row.updated_at == T0

    _run(scenario)


def test_progress_upsert_explicit_null_clears_score() -> None:
    async def scenario(factory: Factory) -> None:
        student, lesson = await _seed_lesson(factory)
        async with factory() as session:
            repo = sql_repos(session).progress
            await repo.upsert(
                student.id, lesson.id, completed=True, score=70.0, set_score=True, now=T0
            )
            row, _ = await repo.upsert(
                student.id,
                lesson.id,
                completed=True,
                score=None,
                set_score=True,
                now=T0 + timedelta(minutes=1),
            )
            assert row.score is None

    _run(scenario)


def test_lesson_with_progress_cannot_be_deleted() -> None:
    async def scenario(factory: Factory) -> None:
        student, lesson = await _seed_lesson(factory)
        async with factory() as session:
            repos = sql_repos(session)
            await repos.progress.upsert(
                student.id, lesson.id, completed=False, score=None, set_score=False, now=T0
            )
            with pytest.raises(ConflictError):
                await repos.curriculum.delete_lesson(lesson.id)
            assert await repos.curriculum.get_lesson(lesson.id) is not None

            assert await repos.progress.delete(student.id, lesson.id) is True
            assert await repos.curriculum.delete_lesson(lesson.id) is True
            assert await repos.curriculum.delete_lesson(lesson.id) is False

    _run(scenario)


def test_lesson_order_is_unique_within_its_module() -> None:
    async def scenario(factory: Factory) -> None:
        _, lesson = await _seed_lesson(factory)

        async with factory() as session:
            with pytest.raises(ConflictError):
                await sql_repos(session).curriculum.add_lesson(
                    Lesson.new(module_id=lesson.module_id, order=1, title="Hi again")
                )

        async with factory() as session:
            repos = sql_repos(session)
            greetings = await repos.curriculum.get_module(lesson.module_id)
            assert greetings is not None
            colors = Module.new(
                level_id=greetings.level_id, slug="colors", title="Colors", order=2
            )
            await repos.curriculum.add_module(colors)
            red = Lesson.new(module_id=colors.id, order=1, title="Red")
            await repos.curriculum.add_lesson(red)
            await session.commit()

        async with factory() as session:
            stored = await sql_repos(session).curriculum.get_lesson(red.id)
            assert stored is not None
            assert (stored.module_id, stored.order) == (colors.id, 1)

    _run(scenario)


def test_student_can_be_enrolled_once() -> None:
    async def scenario(factory: Factory) -> None:
        teacher = User.new(username="ana", password_hash="x", role="teacher")
        student = User.new(username="leo", password_hash="x", role="student")
        first = SchoolClass.new(code="3A", name="Third A", teacher_id=teacher.id)
        second = SchoolClass.new(code="3B", name="Third B", teacher_id=teacher.id)
        async with factory() as session:
            repos = sql_repos(session)
            for user in (teacher, student):
                await repos.users.add(user)
            for school_class in (first, second):
                await repos.classes.add_class(school_class)
            await repos.classes.enroll(Enrollment.new(class_id=first.id, student_id=student.id))
            await session.commit()

        async with factory() as session:
            with pytest.raises(ConflictError):
                await sql_repos(session).classes.enroll(
                    Enrollment.new(class_id=second.id, student_id=student.id)
                )

        async with factory() as session:
            repos = sql_repos(session)
            enrollment = await repos.classes.enrollment_for_student(student.id)
            assert enrollment is not None
            assert enrollment.class_id == first.id
            assert await repos.classes.student_counts([first.id, second.id]) == {
                first.id: 1,
                second.id: 0,
            }

    _run(scenario)


def test_duplicate_username_is_conflict() -> None:
    async def scenario(factory: Factory) -> None:
        async with factory() as session:
            users = sql_repos(session).users
            await users.add(User.new(username="leo", password_hash="x"))
            await session.commit()

        async with factory() as session:
            with pytest.raises(ConflictError):
                await sql_repos(session).users.add(User.new(username="leo", password_hash="y"))

    _run(scenario)


def test_deleting_author_keeps_reports() -> None:
    async def scenario(factory: Factory) -> None:
        author = User.new(username="ana", password_hash="x", role="teacher")
        report = Report.new(snapshot={"title": "Week 1"}, generated_by=author.id)
        async with factory() as session:
            repos = sql_repos(session)
            await repos.users.add(author)
            await repos.reports.add(report)
            await session.commit()

        async with factory() as session:
            assert await sql_repos(session).users.delete(author.id) is True
            await session.commit()

        async with factory() as session:
            stored = await sql_repos(session).reports.get(report.id)
            assert stored is not None
            assert stored.generated_by is None
            assert stored.snapshot == {"title": "Week 1"}

    _run(scenario)


def test_referenced_teacher_cannot_be_deleted() -> None:
    async def scenario(factory: Factory) -> None:
        teacher = User.new(username="ana", password_hash="x", role="teacher")
        async with factory() as session:
            repos = sql_repos(session)
            await repos.users.add(teacher)
            await repos.classes.add_class(
                SchoolClass.new(code="3A", name="Third A", teacher_id=teacher.id)
            )
            await session.commit()

        async with factory() as session:
            with pytest.raises(ConflictError):
                await sql_repos(session).users.delete(teacher.id)

    _run(scenario)


def test_class_for_missing_teacher_is_not_found() -> None:
    async def scenario(factory: Factory) -> None:
        teacher = User.new(username="ana", password_hash="x", role="teacher")
        async with factory() as session:
            repos = sql_repos(session)
            await repos.users.add(teacher)
            await repos.classes.add_class(
                SchoolClass.new(code="3A", name="Third A", teacher_id=teacher.id)
            )
            await session.commit()

        async with factory() as session:
            ghost = User.new(username="ghost", password_hash="x", role="teacher")
            with pytest.raises(NotFoundError) as caught:
                await sql_repos(session).classes.add_class(
                    SchoolClass.new(code="3B", name="Third B", teacher_id=ghost.id)
                )
            assert caught.value.entity == "Teacher"

        async with factory() as session:
            with pytest.raises(ConflictError):
                await sql_repos(session).classes.add_class(
                    SchoolClass.new(code="3A", name="Again", teacher_id=teacher.id)
                )

    _run(scenario, foreign_keys=True)


def test_enrolling_missing_student_is_not_found() -> None:
    async def scenario(factory: Factory) -> None:
        teacher = User.new(username="ana", password_hash="x", role="teacher")
        school_class = SchoolClass.new(code="3A", name="Third A", teacher_id=teacher.id)
        async with factory() as session:
            repos = sql_repos(session)
            await repos.users.add(teacher)
            await repos.classes.add_class(school_class)
            await session.commit()

        ghost = User.new(username="ghost", password_hash="x", role="student")
        async with factory() as session:
            with pytest.raises(NotFoundError) as caught:
                await sql_repos(session).classes.enroll(
                    Enrollment.new(class_id=school_class.id, student_id=ghost.id)
                )
            assert caught.value.entity == "Student"

    _run(scenario, foreign_keys=True)


def test_enrollment_foreign_key_names_the_missing_class() -> None:
    enrollment = Enrollment.new(class_id=uuid4(), student_id=uuid4())
    orig = Exception(
        'insert or update on table "class_students" violates foreign key '
        'constraint "class_students_class_id_fkey"'
    )
    error = _enrollment_conflict(IntegrityError("INSERT", None, orig), enrollment)
    assert isinstance(error, NotFoundError)
    assert (error.entity, error.entity_id) == ("Class", enrollment.class_id)

    duplicate = Exception(
        'duplicate key value violates unique constraint "class_students_student_id_key"'
    )
    error = _enrollment_conflict(IntegrityError("INSERT", None, duplicate), enrollment)
    assert isinstance(error, ConflictError)
