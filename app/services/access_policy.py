"""Capability checks: can this principal perform this action on this target?

Every role rule of the API lives here.  Routers call ``can`` without a
target (role-level gate, via the ``require_action`` dependency) and services
call ``ensure`` with the concrete target once it is loaded, which adds the
ownership rules:

  - a teacher manages only the classes they own
  - a user edits only their own profile (admins edit anyone)
  - a teacher reads reports they generated or that are about their classes

Admins pass every ownership rule but not the role table: progress is
recorded by students only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from app.models.classroom import SchoolClass
from app.models.principal import Principal
from app.models.user import User
from app.services.errors import ForbiddenError

logger = logging.getLogger(__name__)


class Action:
    USER_LIST = "user:list"
    USER_CREATE = "user:create"
    USER_READ = "user:read"
    USER_UPDATE = "user:update"
    USER_CHANGE_ROLE = "user:change_role"
    USER_DELETE = "user:delete"
    STUDENTS_BULK_CREATE = "students:bulk_create"

    CURRICULUM_READ = "curriculum:read"
    LEVEL_WRITE = "level:write"
    CURRICULUM_WRITE = "curriculum:write"  # create/update modules and lessons
    MODULE_DELETE = "module:delete"
    LESSON_DELETE = "lesson:delete"

    CLASS_CREATE = "class:create"
    CLASS_LIST = "class:list"
    CLASS_READ = "class:read"
    CLASS_UPDATE = "class:update"
    CLASS_DELETE = "class:delete"
    CLASS_MANAGE_STUDENTS = "class:manage_students"

    PROGRESS_RECORD = "progress:record"
    PROGRESS_READ_OWN = "progress:read_own"
    PROGRESS_READ_STUDENT = "progress:read_student"
    PROGRESS_RESET = "progress:reset"

    REPORT_CREATE = "report:create"
    REPORT_CLASS_SNAPSHOT = "report:class_snapshot"
    REPORT_LIST = "report:list"
    REPORT_READ = "report:read"


@dataclass(frozen=True, slots=True)
class ReportTarget:
    """What the report rules need to know about a report."""

    generated_by: UUID | None
    class_teacher_id: UUID | None


_ANY = frozenset({"admin", "teacher", "student"})
_STAFF = frozenset({"admin", "teacher"})
_ADMIN = frozenset({"admin"})
_STUDENT = frozenset({"student"})

_ALLOWED_ROLES: dict[str, frozenset[str]] = {
    Action.USER_LIST: _ADMIN,
    Action.USER_CREATE: _ADMIN,
    Action.USER_READ: _STAFF,
    Action.USER_UPDATE: _ANY,
    Action.USER_CHANGE_ROLE: _ADMIN,
    Action.USER_DELETE: _ADMIN,
    Action.STUDENTS_BULK_CREATE: _STAFF,
    Action.CURRICULUM_READ: _ANY,
    Action.LEVEL_WRITE: _ADMIN,
    Action.CURRICULUM_WRITE: _STAFF,
    Action.MODULE_DELETE: _ADMIN,
    Action.LESSON_DELETE: _ADMIN,
    Action.CLASS_CREATE: _STAFF,
    Action.CLASS_LIST: _STAFF,
    Action.CLASS_READ: _STAFF,
    Action.CLASS_UPDATE: _STAFF,
    Action.CLASS_DELETE: _STAFF,
    Action.CLASS_MANAGE_STUDENTS: _STAFF,
    Action.PROGRESS_RECORD: _STUDENT,
    Action.PROGRESS_READ_OWN: _STUDENT,
    Action.PROGRESS_READ_STUDENT: _STAFF,
    Action.PROGRESS_RESET: _STUDENT,
    Action.REPORT_CREATE: _STAFF,
    Action.REPORT_CLASS_SNAPSHOT: _STAFF,
    Action.REPORT_LIST: _STAFF,
    Action.REPORT_READ: _STAFF,
}


def _owns_class(principal: Principal, target: Any) -> bool:
    return isinstance(target, SchoolClass) and target.teacher_id == principal.user_id


def _is_self(principal: Principal, target: Any) -> bool:
    return isinstance(target, User) and target.id == principal.user_id


def _report_visible(principal: Principal, target: Any) -> bool:
    if not isinstance(target, ReportTarget):
        return False
    return principal.user_id in (target.generated_by, target.class_teacher_id)


_TARGET_RULES: dict[str, Callable[[Principal, Any], bool]] = {
    Action.CLASS_READ: _owns_class,
    Action.CLASS_UPDATE: _owns_class,
    Action.CLASS_DELETE: _owns_class,
    Action.CLASS_MANAGE_STUDENTS: _owns_class,
    Action.REPORT_CLASS_SNAPSHOT: _owns_class,
    Action.USER_UPDATE: _is_self,
    Action.REPORT_READ: _report_visible,
}


def can(principal: Principal, action: str, target: Any = None) -> bool:
    try:
        allowed = _ALLOWED_ROLES[action]
    except KeyError:
        raise ValueError(f"unknown action: {action}") from None
    if principal.role not in allowed:
        return False
    if target is None or principal.is_admin():
        return True
    rule = _TARGET_RULES.get(action)
    return rule is None or rule(principal, target)


def ensure(
    principal: Principal,
    action: str,
    target: Any = None,
    *,
    message: str = "Insufficient permissions",
) -> None:
    """Raise ForbiddenError unless ``can(principal, action, target)``."""
    if can(principal, action, target):
        return
    logger.warning(
        "Access denied: user=%s role=%s action=%s",
        principal.user_id,
        principal.role,
        action,
    )
    raise ForbiddenError(message)
