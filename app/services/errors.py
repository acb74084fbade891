"""Domain error taxonomy shared by repositories and services.

Services raise these; the HTTP layer maps each class to a status code in
one place (app/api/errors.py).  None of them is retried: the caller has to
change the request (another code, another owner, an existing id).
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class; the message is safe to show to the client."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    def __init__(self, entity: str, entity_id: object | None = None) -> None:
        message = f"{entity} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(DomainError):
    """Uniqueness violation or a delete blocked by referencing rows."""


class ForbiddenError(DomainError):
    pass


class InvalidInputError(DomainError, ValueError):
    pass


class InvalidRoleError(InvalidInputError):
    """The target user exists but has the wrong role for the operation."""
