from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.db import engine as db_engine


def test_health_reports_memory_store(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["checks"] == {"store": "memory"}


def test_ready_without_database(client: TestClient) -> None:
    assert client.get("/ready").status_code == 200


def test_health_degraded_when_database_unreachable(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def _down() -> bool:
        return False

    monkeypatch.setattr(db_engine, "engine", object())
    monkeypatch.setattr(db_engine, "check_database", _down)

    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["checks"]["store"] == "degraded"
    assert client.get("/ready").status_code == 503


def test_health_ok_when_database_answers(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def _up() -> bool:
        return True

    monkeypatch.setattr(db_engine, "engine", object())
    monkeypatch.setattr(db_engine, "check_database", _up)

    assert client.get("/health").json()["checks"]["store"] == "ok"
    assert client.get("/ready").status_code == 200


def test_health_needs_no_token(client: TestClient) -> None:
    assert client.get("/health").status_code == 200
