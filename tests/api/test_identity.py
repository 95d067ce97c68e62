from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from tests.conftest import headers


@pytest.mark.parametrize(
    "hdrs",
    [
        {},
        {"X-User-Id": str(uuid4())},
        {"X-User-Role": "student"},
        {"X-User-Id": "not-a-uuid", "X-User-Role": "student"},
        {"X-User-Id": str(uuid4()), "X-User-Role": "superuser"},
    ],
)
def test_missing_or_invalid_identity_is_401(client: TestClient, hdrs: dict) -> None:
    assert client.get("/v1/courses", headers=hdrs).status_code == 401


def test_role_is_case_insensitive(client: TestClient) -> None:
    assert client.get("/v1/courses", headers=headers(uuid4(), "Teacher")).status_code == 200


def test_student_cannot_manage_catalog(client: TestClient) -> None:
    resp = client.delete(f"/v1/courses/{uuid4()}", headers=headers(uuid4(), "student"))
    assert resp.status_code == 403


def test_teacher_cannot_enroll(client: TestClient) -> None:
    resp = client.post(
        "/v1/enrollments", json={"course_id": str(uuid4())}, headers=headers(uuid4(), "teacher")
    )
    assert resp.status_code == 403


@pytest.mark.parametrize("role", ["teacher", "moderator", "admin"])
def test_every_staff_role_sees_stats(client: TestClient, role: str) -> None:
    assert client.get("/v1/enrollments/stats", headers=headers(uuid4(), role)).status_code == 200
