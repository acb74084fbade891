"""Shared tables for the in-memory repositories.

Used when DATABASE_URL is not set (local runs and the API test suite).
All in-memory repos read and write the same MemoryStore, so the
cross-aggregate rules (a class cannot be deleted while students are
enrolled, a lesson cannot be deleted while progress references it) see
one consistent state.

Repo methods never await between a check and the write that depends on
it, so each call is atomic under the single-threaded event loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from app.models.classroom import Enrollment, SchoolClass
from app.models.curriculum import Lesson, Level, Module
from app.models.progress import Progress
from app.models.report import Report
from app.models.user import User


@dataclass
class MemoryStore:
    users: dict[UUID, User] = field(default_factory=dict)
    levels: dict[UUID, Level] = field(default_factory=dict)
    modules: dict[UUID, Module] = field(default_factory=dict)
    lessons: dict[UUID, Lesson] = field(default_factory=dict)
    classes: dict[UUID, SchoolClass] = field(default_factory=dict)
    # keyed by student_id: one class per student
    enrollments: dict[UUID, Enrollment] = field(default_factory=dict)
    progress: dict[tuple[UUID, UUID], Progress] = field(default_factory=dict)
    reports: dict[UUID, Report] = field(default_factory=dict)

    def clear(self) -> None:
        self.users.clear()
        self.levels.clear()
        self.modules.clear()
        self.lessons.clear()
        self.classes.clear()
        self.enrollments.clear()
        self.progress.clear()
        self.reports.clear()


def paginate(items: list, offset: int, limit: int) -> tuple[list, int]:
    return items[offset : offset + limit], len(items)
