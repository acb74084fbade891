from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from app.models.user import User
from app.repos.memory_store import MemoryStore, paginate
from app.services.errors import ConflictError

# Columns a caller may change through update(); id/created_at are fixed.
USER_MUTABLE_FIELDS = frozenset(
    {"email", "first_name", "last_name", "role", "password_hash"}
)


class UserRepo(Protocol):
    async def get_by_id(self, user_id: UUID) -> User | None: ...
    async def get_by_username(self, username: str) -> User | None: ...
    async def get_by_email(self, email: str) -> User | None: ...
    async def get_many(self, user_ids: list[UUID]) -> dict[UUID, User]: ...
    async def add(self, user: User) -> None: ...
    async def update(self, user_id: UUID, changes: dict[str, Any]) -> User | None: ...
    async def list(
        self, *, role: str | None, offset: int, limit: int
    ) -> tuple[list[User], int]: ...
    async def delete(self, user_id: UUID) -> bool: ...


class InMemoryUserRepo:
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def get_by_id(self, user_id: UUID) -> User | None:
        return self._store.users.get(user_id)

    async def get_by_username(self, username: str) -> User | None:
        for u in self._store.users.values():
            if u.username == username:
                return u
        return None

    async def get_by_email(self, email: str) -> User | None:
        for u in self._store.users.values():
            if u.email == email:
                return u
        return None

    async def get_many(self, user_ids: list[UUID]) -> dict[UUID, User]:
        users = self._store.users
        return {uid: users[uid] for uid in user_ids if uid in users}

    async def add(self, user: User) -> None:
        self._check_unique(user.id, user.username, user.email)
        self._store.users[user.id] = user

    async def update(self, user_id: UUID, changes: dict[str, Any]) -> User | None:
        u = self._store.users.get(user_id)
        if u is None:
            return None
        unknown = set(changes) - USER_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update user fields: {sorted(unknown)}")

        updated = replace(u, **changes, updated_at=datetime.now(UTC))
        self._check_unique(user_id, updated.username, updated.email)
        self._store.users[user_id] = updated
        return updated

    async def list(
        self, *, role: str | None, offset: int, limit: int
    ) -> tuple[list[User], int]:
        # newest first; dict order is insertion order
        users = [
            u
            for u in reversed(self._store.users.values())
            if role is None or u.role == role
        ]
        return paginate(users, offset, limit)

    async def delete(self, user_id: UUID) -> bool:
        s = self._store
        if user_id not in s.users:
            return False
        referenced = (
            any(c.teacher_id == user_id for c in s.classes.values())
            or user_id in s.enrollments
            or any(sid == user_id for sid, _ in s.progress)
            or any(r.student_id == user_id for r in s.reports.values())
        )
        if referenced:
            raise ConflictError("user is still referenced; delete with cascade=true")

        del s.users[user_id]
        # Reports they generated survive without an author.
        for rid, r in list(s.reports.items()):
            if r.generated_by == user_id:
                s.reports[rid] = replace(r, generated_by=None)
        return True

    def _check_unique(self, user_id: UUID, username: str, email: str | None) -> None:
        for other in self._store.users.values():
            if other.id == user_id:
                continue
            if other.username == username:
                raise ConflictError("username already exists")
            if email is not None and other.email == email:
                raise ConflictError("email already exists")
