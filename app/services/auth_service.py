"""Password hashing and username/password authentication.

Usernames are matched case-insensitively: they are stored lowercased and
every lookup goes through normalize_username.
"""

from __future__ import annotations

import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from app.models.user import User
from app.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)

_ph = PasswordHasher()


def hash_password(plain_password: str) -> str:
    if not plain_password:
        raise ValueError("password must be non-empty")
    # Argon2 includes salt+params in the returned encoded string.
    return _ph.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """False on mismatch and on a malformed stored hash; never raises."""
    if not plain_password or not password_hash:
        return False
    try:
        return _ph.verify(password_hash, plain_password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


def normalize_username(username: str) -> str:
    return username.strip().lower()


async def authenticate_user(repo: UserRepo, username: str, password: str) -> User | None:
    user = await repo.get_by_username(normalize_username(username))
    if user is None:
        return None
    if not verify_password(password, user.password_hash):
        return None

    # Upgrade the stored hash when the hasher parameters changed.
    try:
        if _ph.check_needs_rehash(user.password_hash):
            await repo.update(user.id, {"password_hash": _ph.hash(password)})
            logger.info("Rehashed password for user=%s", user.id)
    except InvalidHash:
        return None

    return user
