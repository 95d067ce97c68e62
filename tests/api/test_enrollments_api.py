from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient

from lms.models.user import User
from tests.conftest import add_course, add_user, student_headers, teacher_headers


def _enroll(client: TestClient, student: User, course_id) -> dict:
    resp = client.post(
        "/v1/enrollments", json={"course_id": str(course_id)}, headers=student_headers(student)
    )
    assert resp.status_code == 201
    return resp.json()


def test_enroll(client: TestClient, uow, student: User) -> None:
    course = add_course(uow, lessons=5)
    body = _enroll(client, student, course.id)
    assert body["student_id"] == str(student.id)
    assert (body["total_lessons"], body["progress"], body["is_completed"]) == (5, 0, False)


def test_enroll_twice_is_400(client: TestClient, uow, student: User) -> None:
    course = add_course(uow)
    _enroll(client, student, course.id)
    again = client.post(
        "/v1/enrollments", json={"course_id": str(course.id)}, headers=student_headers(student)
    )
    assert again.status_code == 400


def test_enroll_unknown_course_is_404(client: TestClient, student: User) -> None:
    resp = client.post(
        "/v1/enrollments", json={"course_id": str(uuid4())}, headers=student_headers(student)
    )
    assert resp.status_code == 404


def test_progress_flow(client: TestClient, uow, student: User) -> None:
    course = add_course(uow, lessons=4)
    _enroll(client, student, course.id)
    hdrs = student_headers(student)
    url = f"/v1/enrollments/progress/{course.id}"

    for module, lesson in ((0, 0), (0, 1), (0, 2)):
        resp = client.post(url, json={"module_index": module, "lesson_index": lesson}, headers=hdrs)
    assert resp.json() == {
        "completed_lessons": 3,
        "total_lessons": 4,
        "progress": 75,
        "is_completed": False,
    }

    # the dashboard follows the write
    assert client.get("/v1/enrollments/mine", headers=hdrs).json()[0]["progress"] == 75

    done = client.post(url, json={"module_index": 1, "lesson_index": 0}, headers=hdrs).json()
    assert (done["progress"], done["is_completed"]) == (100, True)

    repeat = client.post(url, json={"module_index": 1, "lesson_index": 0}, headers=hdrs).json()
    assert repeat == done

    detail = client.get(url, headers=hdrs).json()
    assert detail["enrollment"]["completed_at"] is not None
    assert len(detail["completed"]) == 4


def test_progress_requires_enrollment(client: TestClient, uow, student: User) -> None:
    course = add_course(uow)
    resp = client.post(
        f"/v1/enrollments/progress/{course.id}",
        json={"module_index": 0, "lesson_index": 0},
        headers=student_headers(student),
    )
    assert resp.status_code == 404


def test_negative_lesson_index_is_422(client: TestClient, uow, student: User) -> None:
    course = add_course(uow)
    _enroll(client, student, course.id)
    resp = client.post(
        f"/v1/enrollments/progress/{course.id}",
        json={"module_index": 0, "lesson_index": -1},
        headers=student_headers(student),
    )
    assert resp.status_code == 422


def test_staff_listing_and_stats(client: TestClient, uow, student: User, teacher: User) -> None:
    course = add_course(uow)
    other = add_user(uow, "Bob")
    _enroll(client, student, course.id)
    _enroll(client, other, course.id)
    hdrs = teacher_headers(teacher)

    listing = client.get("/v1/enrollments", params={"search": "bob"}, headers=hdrs).json()
    assert [i["student"]["name"] for i in listing["items"]] == ["Bob"]

    active = client.get("/v1/enrollments", params={"status": "active"}, headers=hdrs).json()
    assert active["total"] == 2

    stats = client.get("/v1/enrollments/stats", headers=hdrs).json()
    assert (stats["total"], stats["active"], stats["completed"]) == (2, 2, 0)
    assert stats["by_course"][0]["count"] == 2


def test_student_cannot_list_all(client: TestClient, student: User) -> None:
    assert client.get("/v1/enrollments", headers=student_headers(student)).status_code == 403
