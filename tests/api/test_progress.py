from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.repos.registry import memory_store
from app.services import progress_service
from tests.conftest import auth, seed_curriculum, seed_lesson, seed_level, seed_module, seed_user


@pytest.fixture(autouse=True)
def ticking_clock(monkeypatch: pytest.MonkeyPatch) -> Iterator[list[datetime]]:
    """Each progress write sees a time one minute after the previous one."""
    issued: list[datetime] = []
    start = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    def _tick() -> datetime:
        issued.append(start + timedelta(minutes=len(issued)))
        return issued[-1]

    monkeypatch.setattr(progress_service, "_now", _tick)
    yield issued


@pytest.fixture
def lessons():
    _, _, lessons = seed_curriculum(4)
    return lessons


def _record(client: TestClient, student, lesson_id, **fields):
    return client.post(
        "/v1/progress", json={"lesson_id": str(lesson_id), **fields}, headers=auth(student)
    )


# ---- POST /v1/progress ----


def test_first_write_creates_row(client: TestClient, student, lessons) -> None:
    resp = _record(client, student, lessons[0].id, completed=True, score=92)
    assert resp.status_code == 201
    body = resp.json()
    assert body["completed"] is True
    assert body["status"] == "completed"
    assert body["score"] == 92
    assert body["completed_at"] is not None
    assert body["lesson"]["title"] == "Lesson 1"
    assert body["module"]["slug"] == "greetings"
    assert body["level"]["code"] == "A1"


def test_second_write_updates_same_row(client: TestClient, student, lessons) -> None:
    first = _record(client, student, lessons[0].id, completed=True, score=92)
    second = _record(client, student, lessons[0].id, completed=True, score=97)
    assert second.status_code == 200
    assert len(memory_store.progress) == 1
    assert second.json()["score"] == 97
    assert second.json()["completed_at"] > first.json()["completed_at"]


def test_replaying_same_request_is_idempotent(client: TestClient, student, lessons) -> None:
    body = {"completed": True, "score": 80}
    _record(client, student, lessons[0].id, **body)
    replay = _record(client, student, lessons[0].id, **body)
    assert replay.status_code == 200
    row = memory_store.progress[(student.id, lessons[0].id)]
    assert (row.completed, row.score) == (True, 80)


def test_defaults_to_in_progress_without_score(client: TestClient, student, lessons) -> None:
    resp = _record(client, student, lessons[0].id)
    assert resp.status_code == 201
    assert resp.json()["completed"] is False
    assert resp.json()["status"] == "in_progress"
    assert resp.json()["score"] is None
    assert resp.json()["completed_at"] is None


def test_omitted_score_keeps_previous_score(client: TestClient, student, lessons) -> None:
    _record(client, student, lessons[0].id, completed=True, score=75)
    resp = _record(client, student, lessons[0].id, completed=True)
    assert resp.json()["score"] == 75


def test_explicit_null_score_clears_it(client: TestClient, student, lessons) -> None:
    _record(client, student, lessons[0].id, completed=True, score=75)
    resp = _record(client, student, lessons[0].id, completed=True, score=None)
    assert resp.json()["score"] is None


def test_uncompleting_keeps_completed_at(client: TestClient, student, lessons) -> None:
    first = _record(client, student, lessons[0].id, completed=True)
    resp = _record(client, student, lessons[0].id, completed=False)
    assert resp.json()["completed"] is False
    assert resp.json()["completed_at"] == first.json()["completed_at"]


def test_score_outside_expected_range_is_stored(client: TestClient, student, lessons) -> None:
    resp = _record(client, student, lessons[0].id, score=105)
    assert resp.status_code == 201
    assert resp.json()["score"] == 105


@pytest.mark.parametrize("score", [1000, -1000, 12345.5])
def test_score_beyond_column_limits_is_400(
    client: TestClient, student, lessons, score: float
) -> None:
    resp = _record(client, student, lessons[0].id, score=score)
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("score:")
    assert memory_store.progress == {}


@pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_score_is_400(
    client: TestClient, student, lessons, literal: str
) -> None:
    resp = client.post(
        "/v1/progress",
        content=f'{{"lesson_id": "{lessons[0].id}", "score": {literal}}}',
        headers={**auth(student), "Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert memory_store.progress == {}


def test_unknown_lesson_is_404(client: TestClient, student) -> None:
    assert _record(client, student, uuid4(), completed=True).status_code == 404
    assert memory_store.progress == {}


@pytest.mark.parametrize("role", ["teacher", "admin"])
def test_only_students_record_progress(client: TestClient, lessons, role: str) -> None:
    user = seed_user(role)
    assert _record(client, user, lessons[0].id, completed=True).status_code == 403


# ---- GET listings ----


def test_list_own_progress_newest_update_first(client: TestClient, student, lessons) -> None:
    _record(client, student, lessons[0].id, completed=True)
    _record(client, student, lessons[1].id)
    _record(client, student, lessons[0].id, completed=True, score=90)

    resp = client.get("/v1/progress/me", headers=auth(student))
    assert resp.status_code == 200
    titles = [row["lesson"]["title"] for row in resp.json()["data"]]
    assert titles == ["Lesson 1", "Lesson 2"]
    assert resp.json()["pagination"]["total"] == 2


def test_list_own_progress_filters(client: TestClient, student) -> None:
    level, module, lessons = seed_curriculum(2)
    colors = seed_module(level, "colors", order=2)
    red = seed_lesson(colors, order=1, title="Red")
    a2_lesson = seed_lesson(seed_module(seed_level("A2", "Elementary"), "food"), title="Bread")
    _record(client, student, lessons[0].id, completed=True)
    _record(client, student, lessons[1].id)
    _record(client, student, red.id, completed=True)
    _record(client, student, a2_lesson.id)

    def titles(query: str) -> list[str]:
        resp = client.get(f"/v1/progress/me?{query}", headers=auth(student))
        return sorted(row["lesson"]["title"] for row in resp.json()["data"])

    assert titles(f"module_id={module.id}") == ["Lesson 1", "Lesson 2"]
    assert titles(f"level_id={level.id}") == ["Lesson 1", "Lesson 2", "Red"]
    assert titles("completed=true") == ["Lesson 1", "Red"]
    assert titles("completed=false") == ["Bread", "Lesson 2"]


def test_students_see_only_their_own_rows(client: TestClient, student, lessons) -> None:
    other = seed_user("student")
    _record(client, other, lessons[0].id, completed=True)
    resp = client.get("/v1/progress/me", headers=auth(student))
    assert resp.json()["data"] == []


def test_teacher_lists_student_progress(client: TestClient, teacher, student, lessons) -> None:
    _record(client, student, lessons[0].id, completed=True)
    resp = client.get(f"/v1/progress/students/{student.id}", headers=auth(teacher))
    assert resp.status_code == 200
    assert resp.json()["data"][0]["student_id"] == str(student.id)


def test_student_progress_for_non_student_is_404(client: TestClient, admin, teacher) -> None:
    resp = client.get(f"/v1/progress/students/{teacher.id}", headers=auth(admin))
    assert resp.status_code == 404


def test_student_cannot_list_other_student(client: TestClient, student) -> None:
    other = seed_user("student")
    resp = client.get(f"/v1/progress/students/{other.id}", headers=auth(student))
    assert resp.status_code == 403


# ---- stats ----


def test_stats_without_progress(client: TestClient, student, lessons) -> None:
    resp = client.get("/v1/progress/stats", headers=auth(student))
    assert resp.status_code == 200
    assert resp.json() == {
        "student_id": str(student.id),
        "total_lessons": 4,
        "completed_lessons": 0,
        "in_progress_lessons": 0,
        "completion_percentage": 0.0,
        "average_score": None,
        "recent_activity": [],
    }


def test_stats_with_no_lessons_at_all(client: TestClient, student) -> None:
    resp = client.get("/v1/progress/stats", headers=auth(student))
    assert resp.json()["total_lessons"] == 0
    assert resp.json()["completion_percentage"] == 0.0


def test_stats_aggregate_ledger(client: TestClient, student) -> None:
    _, _, lessons = seed_curriculum(3)
    _record(client, student, lessons[0].id, completed=True, score=90)
    _record(client, student, lessons[1].id, completed=True, score=85)
    _record(client, student, lessons[2].id, score=60)

    stats = client.get("/v1/progress/stats", headers=auth(student)).json()
    assert stats["completed_lessons"] == 2
    assert stats["in_progress_lessons"] == 1
    assert stats["completion_percentage"] == 66.67
    assert stats["average_score"] == 78.33
    assert [r["lesson"]["title"] for r in stats["recent_activity"]] == [
        "Lesson 3",
        "Lesson 2",
        "Lesson 1",
    ]


def test_recent_activity_is_capped(client: TestClient, student) -> None:
    _, _, lessons = seed_curriculum(7)
    for lesson in lessons:
        _record(client, student, lesson.id, completed=True)
    stats = client.get("/v1/progress/stats", headers=auth(student)).json()
    assert stats["completion_percentage"] == 100.0
    assert len(stats["recent_activity"]) == progress_service.RECENT_ACTIVITY_LIMIT
    assert stats["recent_activity"][0]["lesson"]["title"] == "Lesson 7"


def test_teacher_reads_student_stats(client: TestClient, teacher, student, lessons) -> None:
    _record(client, student, lessons[0].id, completed=True, score=100)
    resp = client.get(f"/v1/progress/stats/{student.id}", headers=auth(teacher))
    assert resp.status_code == 200
    assert resp.json()["completion_percentage"] == 25.0
    assert resp.json()["average_score"] == 100.0


def test_stats_for_unknown_student_is_404(client: TestClient, teacher) -> None:
    resp = client.get(f"/v1/progress/stats/{uuid4()}", headers=auth(teacher))
    assert resp.status_code == 404


def test_teacher_has_no_own_stats(client: TestClient, teacher) -> None:
    assert client.get("/v1/progress/stats", headers=auth(teacher)).status_code == 403


# ---- DELETE /v1/progress/{lesson_id} ----


def test_reset_own_progress(client: TestClient, student, lessons) -> None:
    _record(client, student, lessons[0].id, completed=True)
    resp = client.delete(f"/v1/progress/{lessons[0].id}", headers=auth(student))
    assert resp.status_code == 204
    assert memory_store.progress == {}


def test_reset_absent_progress_is_404(client: TestClient, student, lessons) -> None:
    resp = client.delete(f"/v1/progress/{lessons[0].id}", headers=auth(student))
    assert resp.status_code == 404


def test_reset_only_touches_callers_row(client: TestClient, student, lessons) -> None:
    other = seed_user("student")
    _record(client, other, lessons[0].id, completed=True)
    resp = client.delete(f"/v1/progress/{lessons[0].id}", headers=auth(student))
    assert resp.status_code == 404
    assert (other.id, lessons[0].id) in memory_store.progress
