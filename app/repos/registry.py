"""Repository bundle handed to services.

One bundle per request: either SQL repos sharing the request's session (and
therefore its transaction), or in-memory repos sharing the process-wide
MemoryStore.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.repos.class_repo import ClassRepo, InMemoryClassRepo
from app.repos.curriculum_repo import CurriculumRepo, InMemoryCurriculumRepo
from app.repos.memory_store import MemoryStore
from app.repos.pg_class_repo import PgClassRepo
from app.repos.pg_curriculum_repo import PgCurriculumRepo
from app.repos.pg_progress_repo import PgProgressRepo
from app.repos.pg_report_repo import PgReportRepo
from app.repos.pg_user_repo import PgUserRepo
from app.repos.progress_repo import InMemoryProgressRepo, ProgressRepo
from app.repos.report_repo import InMemoryReportRepo, ReportRepo
from app.repos.user_repo import InMemoryUserRepo, UserRepo


@dataclass(frozen=True, slots=True)
class Repos:
    users: UserRepo
    curriculum: CurriculumRepo
    classes: ClassRepo
    progress: ProgressRepo
    reports: ReportRepo


# Process-wide in-memory tables (used when DATABASE_URL is not set).
memory_store = MemoryStore()


def in_memory_repos(store: MemoryStore = memory_store) -> Repos:
    return Repos(
        users=InMemoryUserRepo(store),
        curriculum=InMemoryCurriculumRepo(store),
        classes=InMemoryClassRepo(store),
        progress=InMemoryProgressRepo(store),
        reports=InMemoryReportRepo(store),
    )


def sql_repos(session: AsyncSession) -> Repos:
    return Repos(
        users=PgUserRepo(session),
        curriculum=PgCurriculumRepo(session),
        classes=PgClassRepo(session),
        progress=PgProgressRepo(session),
        reports=PgReportRepo(session),
    )
