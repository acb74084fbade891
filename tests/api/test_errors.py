"""Error translation: every failure comes back as ``{"detail": ...}``."""

from __future__ import annotations

import logging
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.errors import register_exception_handlers, status_for
from app.services.errors import (
    ConflictError,
    DomainError,
    ForbiddenError,
    InvalidInputError,
    InvalidRoleError,
    NotFoundError,
)
from tests.conftest import auth


@pytest.mark.parametrize(
    "exc,expected",
    [
        (NotFoundError("Lesson", uuid4()), 404),
        (ForbiddenError("no"), 403),
        (ConflictError("taken"), 400),
        (InvalidInputError("bad"), 400),
        (InvalidRoleError("wrong role"), 400),
        (DomainError("other"), 400),
    ],
)
def test_status_for_domain_errors(exc: DomainError, expected: int) -> None:
    assert status_for(exc) == expected


def test_not_found_message_names_entity() -> None:
    assert NotFoundError("Lesson", uuid4()).message == "Lesson not found"


def test_domain_error_body(client: TestClient, admin) -> None:
    resp = client.get(f"/v1/lessons/{uuid4()}", headers=auth(admin))
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Lesson not found"}


def test_validation_error_is_400_with_field(client: TestClient, admin) -> None:
    resp = client.post(
        "/v1/levels", json={"code": "A1"}, headers=auth(admin)
    )
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("name:")


def test_validation_log_omits_submitted_values(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING, logger="app.api.errors"):
        client.post("/auth/register", json={"username": "kid", "password": "hun"})
    assert "hun" not in caplog.text
    assert "password" in caplog.text


def test_pagination_bounds_are_validated(client: TestClient, admin) -> None:
    assert client.get("/v1/users?page=0", headers=auth(admin)).status_code == 400
    assert client.get("/v1/users?limit=101", headers=auth(admin)).status_code == 400
    assert client.get("/v1/users?limit=100", headers=auth(admin)).status_code == 200


def test_unexpected_error_is_generic_500(caplog: pytest.LogCaptureFixture) -> None:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("database password is hunter2")

    client = TestClient(app, raise_server_exceptions=False)
    with caplog.at_level(logging.ERROR, logger="app.api.errors"):
        resp = client.get("/boom")
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Internal server error"}
    assert "hunter2" not in resp.text
    assert "Unhandled error on GET /boom" in caplog.text
