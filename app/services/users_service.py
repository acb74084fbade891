from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from app.models.classroom import SchoolClass
from app.models.principal import Principal
from app.models.user import User, normalize_role
from app.repos.registry import Repos
from app.services import access_policy, auth_service, class_service
from app.services.access_policy import Action
from app.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


class UserValidationError(InvalidInputError):
    pass


@dataclass(frozen=True, slots=True)
class UserProfile:
    user: User
    classes: list[SchoolClass]


@dataclass(frozen=True, slots=True)
class StudentRecord:
    """One row of a bulk upload, already decoded by the client."""

    username: str
    password: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True, slots=True)
class SkippedRecord:
    index: int
    username: str
    reason: str


@dataclass(slots=True)
class BulkResult:
    created: list[User] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)


def _clean_email(email: str | None) -> str | None:
    if email is None:
        return None
    email = email.strip().lower()
    if not email:
        return None
    if "@" not in email:
        raise UserValidationError("email is not valid")
    return email


def _clean_name(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _parse_role(raw: str) -> str:
    role = normalize_role(raw)
    if role is None:
        raise UserValidationError(f"unknown role {raw!r}")
    return role


async def _create(
    repos: Repos,
    *,
    username: str,
    password: str,
    role: str,
    email: str | None,
    first_name: str | None,
    last_name: str | None,
) -> User:
    username = auth_service.normalize_username(username)
    if not username:
        raise UserValidationError("username must be non-empty")
    if not password:
        raise UserValidationError("password must be non-empty")

    user = User.new(
        username=username,
        password_hash=auth_service.hash_password(password),
        role=role,  # type: ignore[arg-type]
        email=_clean_email(email),
        first_name=_clean_name(first_name),
        last_name=_clean_name(last_name),
    )
    await repos.users.add(user)
    logger.info("Created user id=%s username=%s role=%s", user.id, username, role)
    return user


async def register_student(
    repos: Repos,
    *,
    username: str,
    password: str,
    email: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """Public self-registration.  Always produces a student account."""
    return await _create(
        repos,
        username=username,
        password=password,
        role="student",
        email=email,
        first_name=first_name,
        last_name=last_name,
    )


async def create_user(
    repos: Repos,
    principal: Principal,
    *,
    username: str,
    password: str,
    role: str = "student",
    email: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    access_policy.ensure(principal, Action.USER_CREATE)
    return await _create(
        repos,
        username=username,
        password=password,
        role=_parse_role(role),
        email=email,
        first_name=first_name,
        last_name=last_name,
    )


async def bulk_create_students(
    repos: Repos,
    principal: Principal,
    records: list[StudentRecord],
    *,
    class_id: UUID | None = None,
) -> BulkResult:
    """Create students one by one through the normal creation path.

    Invalid or already-taken records are skipped and reported with their
    index.  When ``class_id`` is given every created student is enrolled
    there (same ownership rule as a single enrollment).
    """
    access_policy.ensure(principal, Action.STUDENTS_BULK_CREATE)
    if class_id is not None:
        school_class = await class_service.load_class(repos, class_id)
        access_policy.ensure(
            principal,
            Action.CLASS_MANAGE_STUDENTS,
            school_class,
            message="You can only enroll students in your own classes",
        )

    result = BulkResult()
    seen_usernames: set[str] = set()
    seen_emails: set[str] = set()
    for index, record in enumerate(records):
        username = auth_service.normalize_username(record.username)
        try:
            email = _clean_email(record.email)
        except UserValidationError as e:
            result.skipped.append(SkippedRecord(index, username, e.message))
            continue

        reason = None
        if not username or not record.password:
            reason = "username and password are required"
        elif username in seen_usernames or await repos.users.get_by_username(username):
            reason = "username already exists"
        elif email is not None and (
            email in seen_emails or await repos.users.get_by_email(email)
        ):
            reason = "email already exists"
        if reason is not None:
            result.skipped.append(SkippedRecord(index, username, reason))
            continue

        user = await _create(
            repos,
            username=username,
            password=record.password,
            role="student",
            email=email,
            first_name=record.first_name,
            last_name=record.last_name,
        )
        seen_usernames.add(username)
        if email is not None:
            seen_emails.add(email)
        result.created.append(user)
        if class_id is not None:
            await class_service.enroll(repos, principal, class_id, user.id)

    logger.info(
        "Bulk student import by user=%s created=%d skipped=%d",
        principal.user_id,
        len(result.created),
        len(result.skipped),
    )
    return result


async def list_users(
    repos: Repos,
    principal: Principal,
    *,
    role: str | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[User], int]:
    access_policy.ensure(principal, Action.USER_LIST)
    if role is not None:
        role = _parse_role(role)
    return await repos.users.list(role=role, offset=offset, limit=limit)


async def get_profile(repos: Repos, user_id: UUID) -> UserProfile:
    user = await repos.users.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return UserProfile(user=user, classes=await class_service.classes_of(repos, user))


async def get_user(repos: Repos, principal: Principal, user_id: UUID) -> UserProfile:
    access_policy.ensure(principal, Action.USER_READ)
    return await get_profile(repos, user_id)


async def _ensure_role_change_allowed(repos: Repos, user: User) -> None:
    """Refuse a role change while rows depend on the current role.

    Owned classes need a teacher; an enrollment and progress rows need a
    student.
    """
    held: list[str] = []
    if await repos.classes.classes_for_teacher(user.id):
        held.append("owns classes")
    if await repos.classes.enrollment_for_student(user.id) is not None:
        held.append("is enrolled in a class")
    if sum(await repos.progress.completion_counts(user.id)):
        held.append("has lesson progress")
    if held:
        raise ConflictError(
            f"cannot change role of {user.username}: user {', '.join(held)}"
        )


async def update_user(
    repos: Repos, principal: Principal, user_id: UUID, changes: dict[str, Any]
) -> User:
    """Profile edit by the user themself or by an admin.

    ``role`` is accepted from admins only.  An admin cannot demote
    themself, so the system always keeps the account that made the call.
    """
    target = await repos.users.get_by_id(user_id)
    if target is None:
        raise NotFoundError("User", user_id)
    access_policy.ensure(
        principal,
        Action.USER_UPDATE,
        target,
        message="You can only update your own profile",
    )

    clean: dict[str, Any] = {}
    if "role" in changes and changes["role"] is not None:
        access_policy.ensure(
            principal,
            Action.USER_CHANGE_ROLE,
            message="Only administrators can change roles",
        )
        role = _parse_role(changes["role"])
        if target.id == principal.user_id and role != target.role:
            raise ForbiddenError("Administrators cannot change their own role")
        if role != target.role:
            await _ensure_role_change_allowed(repos, target)
        clean["role"] = role
    if "email" in changes:
        clean["email"] = _clean_email(changes["email"])
    for key in ("first_name", "last_name"):
        if key in changes:
            clean[key] = _clean_name(changes[key])
    if changes.get("password"):
        clean["password_hash"] = auth_service.hash_password(changes["password"])

    if not clean:
        return target
    updated = await repos.users.update(user_id, clean)
    if updated is None:
        raise NotFoundError("User", user_id)
    logger.info("Updated user id=%s fields=%s", user_id, sorted(clean))
    return updated


async def delete_user(
    repos: Repos, principal: Principal, user_id: UUID, *, cascade: bool = False
) -> None:
    """Delete an account.

    Blocked (ConflictError) while classes, an enrollment, progress or
    reports reference the user.  ``cascade=True`` removes those first:
    the student's progress, enrollment and reports, and for a teacher each
    owned class together with its enrollments and reports.
    """
    access_policy.ensure(principal, Action.USER_DELETE)
    if user_id == principal.user_id:
        raise InvalidInputError("You cannot delete your own account")
    user = await repos.users.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    if cascade:
        progress = await repos.progress.delete_for_student(user_id)
        enrollment = await repos.classes.enrollment_for_student(user_id)
        if enrollment is not None:
            await repos.classes.unenroll(enrollment.class_id, user_id)
        reports = await repos.reports.delete_for_student(user_id)
        owned = await repos.classes.classes_for_teacher(user_id)
        for school_class in owned:
            await repos.classes.remove_enrollments(school_class.id)
            reports += await repos.reports.delete_for_class(school_class.id)
            await repos.classes.delete_class(school_class.id)
        logger.warning(
            "Cascade delete user=%s progress=%d classes=%d reports=%d by user=%s",
            user_id,
            progress,
            len(owned),
            reports,
            principal.user_id,
        )

    if not await repos.users.delete(user_id):
        raise NotFoundError("User", user_id)
    logger.info("Deleted user id=%s username=%s", user_id, user.username)


async def ensure_bootstrap_admin(repos: Repos, username: str, password: str) -> User | None:
    """Create the first admin account if the username is free.

    Returns the new user, or None when the account already exists.
    """
    existing = await repos.users.get_by_username(auth_service.normalize_username(username))
    if existing is not None:
        return None
    user = await _create(
        repos,
        username=username,
        password=password,
        role="admin",
        email=None,
        first_name=None,
        last_name=None,
    )
    logger.info("Bootstrap admin created username=%s", user.username)
    return user
