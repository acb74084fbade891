"""Prometheus metrics: HTTP middleware and domain counters.

Counters live in the global registry and never reset between tests, so
every assertion compares the value before and after the action.
"""

from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from tests.conftest import auth, seed_class, seed_curriculum


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def _requests(endpoint: str, status_code: str, method: str = "GET") -> float:
    return _get_sample(
        "http_requests_total",
        {"method": method, "endpoint": endpoint, "status_code": status_code},
    )


def test_request_counter_increments(client: TestClient) -> None:
    before = _requests("/health", "200")
    client.get("/health")
    assert _requests("/health", "200") - before >= 1


def test_request_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _get_sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    assert _get_sample("http_request_duration_seconds_count", labels) - before >= 1


def test_endpoint_label_is_route_template(client: TestClient, admin) -> None:
    template = "/v1/lessons/{lesson_id}"
    before = _requests(template, "404")
    client.get(f"/v1/lessons/{uuid4()}", headers=auth(admin))
    client.get(f"/v1/lessons/{uuid4()}", headers=auth(admin))
    assert _requests(template, "404") - before == 2


def test_unknown_paths_share_one_label(client: TestClient) -> None:
    before = _requests("unmatched", "404")
    client.get(f"/nope/{uuid4()}")
    assert _requests("unmatched", "404") - before == 1


def test_metrics_endpoint_not_self_instrumented(client: TestClient) -> None:
    before = _requests("/metrics", "200")
    client.get("/metrics")
    client.get("/metrics")
    assert _requests("/metrics", "200") == before


def test_metrics_endpoint_exposes_domain_counters(client: TestClient, student) -> None:
    _, _, lessons = seed_curriculum(1)
    client.post(
        "/v1/progress", json={"lesson_id": str(lessons[0].id)}, headers=auth(student)
    )
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert 'progress_upserts_total{outcome="created"}' in resp.text


def test_progress_outcomes_are_counted(client: TestClient, student) -> None:
    _, _, lessons = seed_curriculum(1)
    created = {"outcome": "created"}
    updated = {"outcome": "updated"}
    before = (
        _get_sample("progress_upserts_total", created),
        _get_sample("progress_upserts_total", updated),
    )
    body = {"lesson_id": str(lessons[0].id), "completed": True}
    client.post("/v1/progress", json=body, headers=auth(student))
    client.post("/v1/progress", json=body, headers=auth(student))
    assert _get_sample("progress_upserts_total", created) - before[0] == 1
    assert _get_sample("progress_upserts_total", updated) - before[1] == 1


def test_enrollment_changes_are_counted(client: TestClient, teacher, student) -> None:
    school_class = seed_class(teacher)
    enrolled = {"action": "enrolled"}
    unenrolled = {"action": "unenrolled"}
    before = (
        _get_sample("enrollment_changes_total", enrolled),
        _get_sample("enrollment_changes_total", unenrolled),
    )
    client.post(
        f"/v1/classes/{school_class.id}/enroll",
        json={"student_id": str(student.id)},
        headers=auth(teacher),
    )
    client.delete(
        f"/v1/classes/{school_class.id}/students/{student.id}", headers=auth(teacher)
    )
    assert _get_sample("enrollment_changes_total", enrolled) - before[0] == 1
    assert _get_sample("enrollment_changes_total", unenrolled) - before[1] == 1
