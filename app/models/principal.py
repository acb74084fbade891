from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from app.models.user import Role


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    Carried through the request via FastAPI's dependency system and handed
    to every service call as the acting user.

        user_id: subject from JWT
        role: admin | teacher | student
    """

    user_id: UUID
    role: Role

    def has_role(self, role: str) -> bool:
        return self.role == role

    def has_any_role(self, roles: set[str]) -> bool:
        return self.role in roles

    def is_admin(self) -> bool:
        return self.role == "admin"

    def is_teacher(self) -> bool:
        return self.role == "teacher"

    def is_student(self) -> bool:
        return self.role == "student"
