"""Classes and enrollment.

A class has exactly one owning teacher.  A student holds at most one
enrollment in the whole system; that rule is a unique constraint in the
store, so ``enroll`` does not look for an existing enrollment first and
lets the store reject the second one.  Moving a student is two calls:
``unenroll`` from the old class, then ``enroll`` into the new one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from app.core.metrics import ENROLLMENT_CHANGES
from app.models.classroom import Enrollment, SchoolClass
from app.models.principal import Principal
from app.models.user import User
from app.repos.registry import Repos
from app.services import access_policy
from app.services.access_policy import Action
from app.services.errors import (
    ForbiddenError,
    InvalidInputError,
    InvalidRoleError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClassSummary:
    school_class: SchoolClass
    student_count: int


@dataclass(frozen=True, slots=True)
class EnrolledStudent:
    user: User
    enrolled_at: datetime


@dataclass(frozen=True, slots=True)
class ClassDetail:
    school_class: SchoolClass
    teacher: User | None
    students: list[EnrolledStudent]


async def load_class(repos: Repos, class_id: UUID) -> SchoolClass:
    school_class = await repos.classes.get_class(class_id)
    if school_class is None:
        raise NotFoundError("Class", class_id)
    return school_class


async def _require_teacher(repos: Repos, teacher_id: UUID) -> User:
    teacher = await repos.users.get_by_id(teacher_id)
    if teacher is None:
        raise NotFoundError("Teacher", teacher_id)
    if teacher.role != "teacher":
        raise InvalidRoleError("teacher_id must reference a teacher")
    return teacher


async def create_class(
    repos: Repos,
    principal: Principal,
    *,
    code: str,
    name: str,
    teacher_id: UUID | None = None,
    grade: str | None = None,
    section: str | None = None,
    schedule: str | None = None,
) -> SchoolClass:
    access_policy.ensure(principal, Action.CLASS_CREATE)
    code = code.strip()
    name = name.strip()
    if not code or not name:
        raise InvalidInputError("code and name are required")

    if principal.is_teacher():
        # Teachers always own what they create.
        if teacher_id is not None and teacher_id != principal.user_id:
            raise ForbiddenError("Teachers can only create their own classes")
        owner_id = principal.user_id
    else:
        if teacher_id is None:
            raise InvalidInputError("teacher_id is required")
        await _require_teacher(repos, teacher_id)
        owner_id = teacher_id

    school_class = SchoolClass.new(
        code=code,
        name=name,
        teacher_id=owner_id,
        grade=grade,
        section=section,
        schedule=schedule,
    )
    await repos.classes.add_class(school_class)
    logger.info(
        "Class created id=%s code=%s teacher=%s", school_class.id, code, owner_id
    )
    return school_class


async def list_classes(
    repos: Repos,
    principal: Principal,
    *,
    teacher_id: UUID | None = None,
    grade: str | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[ClassSummary], int]:
    access_policy.ensure(principal, Action.CLASS_LIST)
    if principal.is_teacher():
        teacher_id = principal.user_id
    classes, total = await repos.classes.list_classes(
        teacher_id=teacher_id, grade=grade, offset=offset, limit=limit
    )
    counts = await repos.classes.student_counts([c.id for c in classes])
    return [ClassSummary(c, counts.get(c.id, 0)) for c in classes], total


async def get_class_detail(
    repos: Repos, principal: Principal, class_id: UUID
) -> ClassDetail:
    school_class = await load_class(repos, class_id)
    access_policy.ensure(
        principal,
        Action.CLASS_READ,
        school_class,
        message="You can only view your own classes",
    )
    enrollments = await repos.classes.enrollments_for_class(class_id)
    users = await repos.users.get_many(
        [school_class.teacher_id, *(e.student_id for e in enrollments)]
    )
    students = [
        EnrolledStudent(user=users[e.student_id], enrolled_at=e.enrolled_at)
        for e in enrollments
        if e.student_id in users
    ]
    return ClassDetail(
        school_class=school_class,
        teacher=users.get(school_class.teacher_id),
        students=students,
    )


async def update_class(
    repos: Repos, principal: Principal, class_id: UUID, changes: dict[str, Any]
) -> SchoolClass:
    school_class = await load_class(repos, class_id)
    access_policy.ensure(
        principal,
        Action.CLASS_UPDATE,
        school_class,
        message="You can only modify your own classes",
    )
    if "teacher_id" in changes and changes["teacher_id"] != school_class.teacher_id:
        if not principal.is_admin():
            raise ForbiddenError("Only administrators can reassign a class")
        await _require_teacher(repos, changes["teacher_id"])
    for key in ("code", "name"):
        if key in changes:
            changes[key] = (changes[key] or "").strip()
            if not changes[key]:
                raise InvalidInputError(f"{key} must be non-empty")

    updated = await repos.classes.update_class(class_id, changes)
    if updated is None:
        raise NotFoundError("Class", class_id)
    logger.info("Class updated id=%s fields=%s", class_id, sorted(changes))
    return updated


async def delete_class(
    repos: Repos, principal: Principal, class_id: UUID, *, cascade: bool = False
) -> None:
    """Delete a class.

    Without ``cascade`` the store refuses while enrollments or reports
    reference the class (ConflictError).  With it, those rows are removed
    first, in the same transaction.
    """
    school_class = await load_class(repos, class_id)
    access_policy.ensure(
        principal,
        Action.CLASS_DELETE,
        school_class,
        message="You can only delete your own classes",
    )
    if cascade:
        removed = await repos.classes.remove_enrollments(class_id)
        reports = await repos.reports.delete_for_class(class_id)
        logger.warning(
            "Cascade delete class=%s enrollments=%d reports=%d by user=%s",
            class_id,
            removed,
            reports,
            principal.user_id,
        )
    if not await repos.classes.delete_class(class_id):
        raise NotFoundError("Class", class_id)
    logger.info("Class deleted id=%s", class_id)


async def enroll(
    repos: Repos, principal: Principal, class_id: UUID, student_id: UUID
) -> Enrollment:
    school_class = await load_class(repos, class_id)
    access_policy.ensure(
        principal,
        Action.CLASS_MANAGE_STUDENTS,
        school_class,
        message="You can only enroll students in your own classes",
    )
    student = await repos.users.get_by_id(student_id)
    if student is None:
        raise NotFoundError("Student", student_id)
    if student.role != "student":
        raise InvalidRoleError("Only students can be enrolled in a class")

    enrollment = Enrollment.new(class_id=class_id, student_id=student_id)
    # ConflictError here when the student is enrolled anywhere already.
    await repos.classes.enroll(enrollment)
    ENROLLMENT_CHANGES.labels(action="enrolled").inc()
    logger.info("Student enrolled student=%s class=%s", student_id, class_id)
    return enrollment


async def unenroll(
    repos: Repos, principal: Principal, class_id: UUID, student_id: UUID
) -> None:
    school_class = await load_class(repos, class_id)
    access_policy.ensure(
        principal,
        Action.CLASS_MANAGE_STUDENTS,
        school_class,
        message="You can only remove students from your own classes",
    )
    if not await repos.classes.unenroll(class_id, student_id):
        raise NotFoundError("Enrollment")
    ENROLLMENT_CHANGES.labels(action="unenrolled").inc()
    logger.info("Student unenrolled student=%s class=%s", student_id, class_id)


async def classes_of(repos: Repos, user: User) -> list[SchoolClass]:
    """Owned classes for a teacher, the enrolled class for a student."""
    if user.role == "teacher":
        return await repos.classes.classes_for_teacher(user.id)
    if user.role == "student":
        enrollment = await repos.classes.enrollment_for_student(user.id)
        if enrollment is None:
            return []
        school_class = await repos.classes.get_class(enrollment.class_id)
        return [school_class] if school_class is not None else []
    return []
