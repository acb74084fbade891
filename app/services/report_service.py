"""Write-once report snapshots.

A report freezes a JSON document at creation time.  There is no update
path: regenerating a report creates a new row.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from app.core.metrics import REPORTS_GENERATED
from app.models.principal import Principal
from app.models.progress import ProgressStats
from app.models.report import Report
from app.repos.registry import Repos
from app.services import access_policy, class_service, progress_service
from app.services.access_policy import Action, ReportTarget
from app.services.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)


def stats_summary(stats: ProgressStats) -> dict[str, Any]:
    return {
        "total_lessons": stats.total_lessons,
        "completed_lessons": stats.completed_lessons,
        "in_progress_lessons": stats.in_progress_lessons,
        "completion_percentage": stats.completion_percentage,
        "average_score": stats.average_score,
    }


async def generate_report(
    repos: Repos,
    principal: Principal,
    *,
    snapshot: Any,
    class_id: UUID | None = None,
    student_id: UUID | None = None,
) -> Report:
    """Store a caller-built snapshot verbatim."""
    access_policy.ensure(principal, Action.REPORT_CREATE)
    if snapshot is None:
        raise InvalidInputError("snapshot is required")
    if class_id is not None:
        school_class = await class_service.load_class(repos, class_id)
        access_policy.ensure(
            principal,
            Action.CLASS_READ,
            school_class,
            message="You can only report on your own classes",
        )
    if student_id is not None:
        student = await repos.users.get_by_id(student_id)
        if student is None or student.role != "student":
            raise NotFoundError("Student", student_id)

    report = Report.new(
        snapshot=snapshot,
        generated_by=principal.user_id,
        class_id=class_id,
        student_id=student_id,
    )
    await repos.reports.add(report)
    REPORTS_GENERATED.labels(kind="custom").inc()
    logger.info("Report stored id=%s by user=%s", report.id, principal.user_id)
    return report


async def snapshot_class(repos: Repos, principal: Principal, class_id: UUID) -> Report:
    """Freeze the current statistics of every student enrolled in a class."""
    school_class = await class_service.load_class(repos, class_id)
    access_policy.ensure(
        principal,
        Action.REPORT_CLASS_SNAPSHOT,
        school_class,
        message="You can only report on your own classes",
    )
    detail = await class_service.get_class_detail(repos, principal, class_id)

    students = []
    for enrolled in detail.students:
        stats = await progress_service.compute_stats(repos, enrolled.user.id)
        students.append(
            {
                "student_id": str(enrolled.user.id),
                "username": enrolled.user.username,
                "name": enrolled.user.display_name,
                **stats_summary(stats),
            }
        )

    percentages = [s["completion_percentage"] for s in students]
    scores = [s["average_score"] for s in students if s["average_score"] is not None]
    snapshot = {
        "class": {
            "id": str(school_class.id),
            "code": school_class.code,
            "name": school_class.name,
        },
        "generated_at": datetime.now(UTC).isoformat(),
        "student_count": len(students),
        "average_completion_percentage": (
            round(sum(percentages) / len(percentages), 2) if percentages else 0.0
        ),
        "average_score": round(sum(scores) / len(scores), 2) if scores else None,
        "students": students,
    }

    report = Report.new(
        snapshot=snapshot, generated_by=principal.user_id, class_id=class_id
    )
    await repos.reports.add(report)
    REPORTS_GENERATED.labels(kind="class").inc()
    logger.info(
        "Class report stored id=%s class=%s students=%d",
        report.id,
        class_id,
        len(students),
    )
    return report


async def list_reports(
    repos: Repos,
    principal: Principal,
    *,
    class_id: UUID | None = None,
    student_id: UUID | None = None,
    descending: bool = True,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Report], int]:
    access_policy.ensure(principal, Action.REPORT_LIST)
    return await repos.reports.list(
        class_id=class_id,
        student_id=student_id,
        visible_to_teacher=None if principal.is_admin() else principal.user_id,
        descending=descending,
        offset=offset,
        limit=limit,
    )


async def get_report(repos: Repos, principal: Principal, report_id: UUID) -> Report:
    report = await repos.reports.get(report_id)
    if report is None:
        raise NotFoundError("Report", report_id)

    class_teacher_id = None
    if report.class_id is not None:
        school_class = await repos.classes.get_class(report.class_id)
        if school_class is not None:
            class_teacher_id = school_class.teacher_id
    access_policy.ensure(
        principal,
        Action.REPORT_READ,
        ReportTarget(generated_by=report.generated_by, class_teacher_id=class_teacher_id),
        message="You can only view your own reports",
    )
    return report
