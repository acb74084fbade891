from __future__ import annotations

import asyncio

from argon2 import PasswordHasher

from app.models.user import User, normalize_role
from app.repos.memory_store import MemoryStore
from app.repos.user_repo import InMemoryUserRepo
from app.services.auth_service import (
    authenticate_user,
    hash_password,
    normalize_username,
    verify_password,
)


def test_authenticate_user_rehashes_when_needed() -> None:
    # Create a user with a deliberately "weak/old" Argon2 configuration.
    old_ph = PasswordHasher(time_cost=1, memory_cost=8 * 1024, parallelism=1)
    password = "pw123"
    old_hash = old_ph.hash(password)

    repo = InMemoryUserRepo(MemoryStore())
    u = User.new(username="maria", password_hash=old_hash, role="teacher")
    asyncio.run(repo.add(u))

    authed = asyncio.run(authenticate_user(repo, "maria", password))
    assert authed is not None

    stored = asyncio.run(repo.get_by_username("maria"))
    assert stored is not None
    assert stored.password_hash != old_hash
    assert verify_password(password, stored.password_hash)


def test_authenticate_user_normalizes_username() -> None:
    repo = InMemoryUserRepo(MemoryStore())
    asyncio.run(repo.add(User.new(username="maria", password_hash=hash_password("pw123"))))

    assert asyncio.run(authenticate_user(repo, "  MARIA ", "pw123")) is not None


def test_authenticate_user_wrong_password() -> None:
    repo = InMemoryUserRepo(MemoryStore())
    asyncio.run(repo.add(User.new(username="maria", password_hash=hash_password("pw123"))))

    assert asyncio.run(authenticate_user(repo, "maria", "nope")) is None
    assert asyncio.run(authenticate_user(repo, "nobody", "pw123")) is None


def test_verify_password_rejects_garbage_hash() -> None:
    assert verify_password("pw123", "not-an-argon2-hash") is False
    assert verify_password("", hash_password("pw123")) is False


def test_normalize_username() -> None:
    assert normalize_username(" Leo.Garcia ") == "leo.garcia"


def test_role_aliases() -> None:
    assert normalize_role("Docente") == "teacher"
    assert normalize_role("estudiante") == "student"
    assert normalize_role("ADMIN") == "admin"
    assert normalize_role("parent") is None
