from __future__ import annotations

from fastapi.testclient import TestClient

from lms.models.user import User
from tests.conftest import BATCH, add_course, add_user, student_headers, teacher_headers


def _batch(client: TestClient, teacher: User, course_id, batch: str = BATCH):
    return client.post(
        "/v1/assignments/batch",
        json={"course_id": str(course_id), "batch": batch, "title": "Essay", "module_index": 0},
        headers=teacher_headers(teacher),
    )


def _mine(client: TestClient, student: User) -> dict:
    items = client.get("/v1/assignments", headers=student_headers(student)).json()["items"]
    return next(i for i in items if i["student_id"] == str(student.id))


def test_batch_fan_out(client: TestClient, uow, teacher: User, student: User) -> None:
    course = add_course(uow)
    add_user(uow, "Bob")

    resp = _batch(client, teacher, course.id)

    assert resp.status_code == 201
    assert resp.json() == {"created_count": 2, "requested_count": 2, "batch": BATCH}
    listing = client.get(
        "/v1/assignments", params={"status": "pending"}, headers=teacher_headers(teacher)
    ).json()
    assert listing["total"] == 2


def test_batch_for_wrong_cohort_is_404(client: TestClient, uow, teacher: User) -> None:
    course = add_course(uow)
    assert _batch(client, teacher, course.id, batch="2025-fall").status_code == 404


def test_submit_and_review(client: TestClient, uow, teacher: User, student: User) -> None:
    course = add_course(uow)
    _batch(client, teacher, course.id)
    assignment = _mine(client, student)
    url = f"/v1/assignments/{assignment['id']}"

    early = client.post(f"{url}/review", json={"feedback": "?"}, headers=teacher_headers(teacher))
    assert early.status_code == 400

    submitted = client.post(
        f"{url}/submit", json={"answer": "my essay"}, headers=student_headers(student)
    )
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "submitted"

    reviewed = client.post(
        f"{url}/review", json={"feedback": "good"}, headers=teacher_headers(teacher)
    )
    assert reviewed.status_code == 200
    assert reviewed.json()["review"]["feedback"] == "good"

    view = client.get(url, headers=student_headers(student)).json()
    assert view["status"] == "reviewed"
    assert view["reviewer"] == {"id": str(teacher.id), "name": "Grace"}

    late = client.post(f"{url}/submit", json={"answer": "v2"}, headers=student_headers(student))
    assert late.status_code == 400


def test_student_authored_submission(client: TestClient, uow, student: User) -> None:
    course = add_course(uow)
    hdrs = student_headers(student)
    body = {"course_id": str(course.id), "title": "Reflection", "answer": "thoughts"}

    assert client.post("/v1/assignments/submit", json=body, headers=hdrs).status_code == 404

    client.post("/v1/enrollments", json={"course_id": str(course.id)}, headers=hdrs)
    resp = client.post("/v1/assignments/submit", json=body, headers=hdrs)
    assert resp.status_code == 201
    assert resp.json()["status"] == "submitted"


def test_other_students_assignment_is_hidden(
    client: TestClient, uow, teacher: User, student: User
) -> None:
    course = add_course(uow)
    bob = add_user(uow, "Bob")
    _batch(client, teacher, course.id)
    assignment = _mine(client, student)

    resp = client.get(f"/v1/assignments/{assignment['id']}", headers=student_headers(bob))
    assert resp.status_code == 404


def test_pending_and_stats(client: TestClient, uow, teacher: User, student: User) -> None:
    course = add_course(uow)
    _batch(client, teacher, course.id)
    hdrs = teacher_headers(teacher)

    assert len(client.get("/v1/assignments/pending", headers=hdrs).json()) == 1
    stats = client.get(
        "/v1/assignments/stats", params={"course": str(course.id)}, headers=hdrs
    ).json()
    assert stats == {"total": 1, "pending": 1, "submitted": 0, "reviewed": 0}


def test_unknown_status_filter_is_ignored(client: TestClient, uow, teacher: User, student: User) -> None:
    course = add_course(uow)
    _batch(client, teacher, course.id)
    resp = client.get(
        "/v1/assignments", params={"status": "bogus"}, headers=teacher_headers(teacher)
    )
    assert resp.json()["total"] == 1


def test_update_and_delete(client: TestClient, uow, teacher: User) -> None:
    course = add_course(uow)
    hdrs = teacher_headers(teacher)
    created = client.post(
        "/v1/assignments", json={"course_id": str(course.id), "title": "Lab"}, headers=hdrs
    ).json()
    url = f"/v1/assignments/{created['id']}"

    patched = client.patch(url, json={"title": "Lab 1"}, headers=hdrs)
    assert patched.json()["title"] == "Lab 1"
    assert client.get(url, headers=hdrs).json()["title"] == "Lab 1"

    assert client.delete(url, headers=hdrs).status_code == 204
    assert client.get(url, headers=hdrs).status_code == 404


def test_student_cannot_review(client: TestClient, uow, teacher: User, student: User) -> None:
    course = add_course(uow)
    _batch(client, teacher, course.id)
    assignment = _mine(client, student)
    resp = client.post(
        f"/v1/assignments/{assignment['id']}/review",
        json={"feedback": "self-approved"},
        headers=student_headers(student),
    )
    assert resp.status_code == 403
