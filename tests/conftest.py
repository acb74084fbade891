from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.db import engine as db_engine
from app.main import app
from app.models.classroom import Enrollment, SchoolClass
from app.models.curriculum import Lesson, Level, Module
from app.models.progress import Progress
from app.models.user import User
from app.repos.registry import memory_store
from app.services import token_service
from app.services.auth_service import hash_password


@pytest.fixture(autouse=True)
def in_memory_store(monkeypatch: pytest.MonkeyPatch) -> None:
    """Every API test runs against a fresh in-memory store."""
    monkeypatch.setattr(db_engine, "engine", None)
    monkeypatch.setattr(db_engine, "async_session_factory", None)
    memory_store.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(user_id: Any, role: str = "student") -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=str(user_id), role=role)


def auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(user.id, user.role)}"}


# ---------------------------------------------------------------------------
# Seed helpers: write straight into the in-memory store
# ---------------------------------------------------------------------------


def seed_user(
    role: str = "student",
    username: str | None = None,
    *,
    password: str | None = None,
    email: str | None = None,
    first_name: str | None = None,
) -> User:
    """Add a user.  Only hash a password when the test logs in with it."""
    n = len(memory_store.users) + 1
    user = User.new(
        username=username or f"{role}{n}",
        password_hash=hash_password(password) if password else "x",
        role=role,  # type: ignore[arg-type]
        email=email,
        first_name=first_name,
    )
    memory_store.users[user.id] = user
    return user


def seed_class(teacher: User, code: str | None = None, **fields: Any) -> SchoolClass:
    school_class = SchoolClass.new(
        code=code or f"C-{len(memory_store.classes) + 1}",
        name=fields.pop("name", "Morning group"),
        teacher_id=teacher.id,
        **fields,
    )
    memory_store.classes[school_class.id] = school_class
    return school_class


def seed_enrollment(school_class: SchoolClass, student: User) -> Enrollment:
    enrollment = Enrollment.new(class_id=school_class.id, student_id=student.id)
    memory_store.enrollments[student.id] = enrollment
    return enrollment


def seed_progress(
    student: User, lesson: Lesson, *, completed: bool = False, score: float | None = None
) -> Progress:
    row = Progress.new(
        student_id=student.id, lesson_id=lesson.id, completed=completed, score=score
    )
    memory_store.progress[(student.id, lesson.id)] = row
    return row


def seed_level(code: str = "A1", name: str = "Beginner") -> Level:
    level = Level.new(code=code, name=name)
    memory_store.levels[level.id] = level
    return level


def seed_module(level: Level, slug: str = "greetings", order: int = 1) -> Module:
    module = Module.new(level_id=level.id, slug=slug, title=slug.title(), order=order)
    memory_store.modules[module.id] = module
    return module


def seed_lesson(module: Module, order: int = 1, title: str | None = None) -> Lesson:
    lesson = Lesson.new(
        module_id=module.id,
        order=order,
        title=title or f"Lesson {order}",
        content={"type": "vocabulary", "words": ["hello", "bye"]},
    )
    memory_store.lessons[lesson.id] = lesson
    return lesson


def seed_curriculum(lessons: int = 3) -> tuple[Level, Module, list[Lesson]]:
    level = seed_level()
    module = seed_module(level)
    return level, module, [seed_lesson(module, order=i) for i in range(1, lessons + 1)]


# ---------------------------------------------------------------------------
# Common actors
# ---------------------------------------------------------------------------


@pytest.fixture
def admin() -> User:
    return seed_user("admin", "admin")


@pytest.fixture
def teacher() -> User:
    return seed_user("teacher", "teacher", first_name="Ana")


@pytest.fixture
def student() -> User:
    return seed_user("student", "student", first_name="Leo")
