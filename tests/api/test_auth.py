from __future__ import annotations

import jwt
from fastapi.testclient import TestClient

from app.repos.registry import memory_store
from app.services import token_service
from tests.conftest import auth, mint_token, seed_class, seed_enrollment, seed_user


def _register(client: TestClient, **overrides: object):
    body = {"username": "Lucia", "password": "secret123", "email": "lucia@school.test"}
    body.update(overrides)
    return client.post("/auth/register", json=body)


# ---- POST /auth/register ----


def test_register_creates_student_and_returns_token(client: TestClient) -> None:
    resp = _register(client, first_name="Lucía")
    assert resp.status_code == 201
    body = resp.json()
    assert body["user"]["role"] == "student"
    assert body["user"]["username"] == "lucia"
    assert body["user"]["first_name"] == "Lucía"
    assert "password_hash" not in body["user"]

    claims = token_service.decode_access_token(body["accessToken"])
    assert claims["sub"] == body["user"]["id"]
    assert claims["role"] == "student"


def test_register_ignores_role_in_body(client: TestClient) -> None:
    resp = _register(client, role="admin")
    assert resp.status_code == 201
    assert resp.json()["user"]["role"] == "student"


def test_register_duplicate_username_is_400(client: TestClient) -> None:
    assert _register(client).status_code == 201
    resp = _register(client, username="LUCIA", email="other@school.test")
    assert resp.status_code == 400
    assert "username" in resp.json()["detail"]


def test_register_duplicate_email_is_400(client: TestClient) -> None:
    assert _register(client).status_code == 201
    resp = _register(client, username="lucia2", email="Lucia@School.test")
    assert resp.status_code == 400
    assert "email" in resp.json()["detail"]


def test_register_short_password_is_400(client: TestClient) -> None:
    resp = _register(client, password="123")
    assert resp.status_code == 400
    assert len(memory_store.users) == 0


# ---- POST /auth/login ----


def test_login_returns_token_and_user(client: TestClient) -> None:
    user = seed_user("teacher", "mrs.green", password="apples42")
    resp = client.post("/auth/login", json={"username": "mrs.green", "password": "apples42"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["id"] == str(user.id)
    claims = token_service.decode_access_token(body["accessToken"])
    assert claims["role"] == "teacher"


def test_login_is_case_insensitive_on_username(client: TestClient) -> None:
    seed_user("student", "tomas", password="secret123")
    resp = client.post("/auth/login", json={"username": "  Tomas ", "password": "secret123"})
    assert resp.status_code == 200


def test_login_wrong_password_is_401(client: TestClient) -> None:
    seed_user("student", "tomas", password="secret123")
    resp = client.post("/auth/login", json={"username": "tomas", "password": "nope"})
    assert resp.status_code == 401


def test_login_unknown_user_is_401(client: TestClient) -> None:
    resp = client.post("/auth/login", json={"username": "ghost", "password": "secret123"})
    assert resp.status_code == 401


def test_token_endpoint_accepts_form(client: TestClient) -> None:
    seed_user("admin", "root", password="secret123")
    resp = client.post(
        "/auth/token",
        data={"username": "root", "password": "secret123"},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert resp.status_code == 200
    assert resp.json()["token_type"] == "bearer"


# ---- GET /auth/me ----


def test_me_requires_token(client: TestClient) -> None:
    assert client.get("/auth/me").status_code == 401


def test_me_rejects_garbage_token(client: TestClient) -> None:
    resp = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_me_rejects_expired_token(client: TestClient) -> None:
    user = seed_user("student")
    token = token_service.create_access_token(sub=str(user.id), role="student", ttl_min=-1)
    resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_me_rejects_token_with_unknown_role(client: TestClient) -> None:
    user = seed_user("student")
    token = mint_token(user.id, role="superuser")
    resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_me_rejects_token_signed_with_other_key(client: TestClient) -> None:
    token = jwt.encode({"sub": "x", "role": "admin"}, "k" * 32, algorithm="HS256")
    resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_me_for_deleted_user_is_404(client: TestClient) -> None:
    user = seed_user("student")
    headers = auth(user)
    del memory_store.users[user.id]
    assert client.get("/auth/me", headers=headers).status_code == 404


def test_me_lists_owned_classes_for_teacher(client: TestClient, teacher) -> None:
    seed_class(teacher, "A-1")
    seed_class(teacher, "B-2")
    resp = client.get("/auth/me", headers=auth(teacher))
    assert resp.status_code == 200
    assert sorted(c["code"] for c in resp.json()["classes"]) == ["A-1", "B-2"]


def test_me_lists_enrolled_class_for_student(client: TestClient, teacher, student) -> None:
    school_class = seed_class(teacher, "A-1")
    seed_enrollment(school_class, student)
    resp = client.get("/auth/me", headers=auth(student))
    assert [c["id"] for c in resp.json()["classes"]] == [str(school_class.id)]


def test_me_has_no_classes_for_unenrolled_student(client: TestClient, student) -> None:
    resp = client.get("/auth/me", headers=auth(student))
    assert resp.json()["classes"] == []
