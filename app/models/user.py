from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal
from uuid import UUID, uuid4

Role = Literal["admin", "teacher", "student"]

ROLES: frozenset[str] = frozenset({"admin", "teacher", "student"})

# Spanish role names used by the classroom client and older accounts.
ROLE_ALIASES: dict[str, str] = {
    "docente": "teacher",
    "estudiante": "student",
    "administrador": "admin",
}


def normalize_role(raw: str) -> Role | None:
    """Map a role name or alias to a canonical Role, or None if unknown."""
    value = raw.strip().lower()
    value = ROLE_ALIASES.get(value, value)
    if value not in ROLES:
        return None
    return value  # type: ignore[return-value]


@dataclass(frozen=True, slots=True)
class User:
    id: UUID
    username: str
    password_hash: str
    role: Role = "student"
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or self.username

    @staticmethod
    def new(
        *,
        username: str,
        password_hash: str,
        role: Role = "student",
        email: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        now = datetime.now(UTC)
        return User(
            id=uuid4(),
            username=username,
            password_hash=password_hash,
            role=role,
            email=email,
            first_name=first_name,
            last_name=last_name,
            created_at=now,
            updated_at=now,
        )
