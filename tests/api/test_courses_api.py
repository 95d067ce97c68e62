from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient

from lms.models.user import User
from tests.conftest import BATCH, add_course, student_headers, teacher_headers


def _course_body(**overrides) -> dict:
    body = {
        "title": "Web APIs",
        "description": "HTTP from the ground up",
        "instructor": "Grace",
        "price": 25.0,
        "category": "programming",
        "batch": {"name": BATCH, "start_date": 1_750_000_000},
        "tags": ["web", "http"],
        "modules": [
            {"title": "Basics", "lessons": [{"title": "Verbs"}, {"title": "Status codes"}]}
        ],
        "is_published": True,
    }
    body.update(overrides)
    return body


def test_create_then_list(client: TestClient, teacher: User, student: User) -> None:
    resp = client.post("/v1/courses", json=_course_body(), headers=teacher_headers(teacher))
    assert resp.status_code == 201
    created = resp.json()
    assert created["total_lessons"] == 2
    assert created["modules"][0]["lessons"][1]["title"] == "Status codes"

    listing = client.get("/v1/courses", headers=student_headers(student)).json()
    assert [c["id"] for c in listing["items"]] == [created["id"]]
    assert "modules" not in listing["items"][0]


def test_student_cannot_create(client: TestClient, student: User) -> None:
    resp = client.post("/v1/courses", json=_course_body(), headers=student_headers(student))
    assert resp.status_code == 403


def test_create_rejects_negative_price(client: TestClient, teacher: User) -> None:
    resp = client.post(
        "/v1/courses", json=_course_body(price=-1), headers=teacher_headers(teacher)
    )
    assert resp.status_code == 422


def test_unpublished_visible_to_staff_only(
    client: TestClient, uow, teacher: User, student: User
) -> None:
    add_course(uow, "Draft", published=False)
    params = {"include_unpublished": "true"}

    as_student = client.get("/v1/courses", params=params, headers=student_headers(student))
    as_teacher = client.get("/v1/courses", params=params, headers=teacher_headers(teacher))

    assert as_student.json()["total"] == 0
    assert as_teacher.json()["total"] == 1


def test_filters_and_sort(client: TestClient, uow, student: User) -> None:
    add_course(uow, "Cheap", price=5)
    add_course(uow, "Pricey", price=500)
    resp = client.get(
        "/v1/courses",
        params={"max_price": 100, "sort": "price-desc"},
        headers=student_headers(student),
    )
    assert [c["title"] for c in resp.json()["items"]] == ["Cheap"]


def test_get_detail_and_404(client: TestClient, uow, student: User) -> None:
    course = add_course(uow)
    ok = client.get(f"/v1/courses/{course.id}", headers=student_headers(student))
    assert ok.status_code == 200
    assert ok.json()["title"] == "Intro to Python"

    missing = client.get(f"/v1/courses/{uuid4()}", headers=student_headers(student))
    assert missing.status_code == 404


def test_update_is_visible_immediately(client: TestClient, uow, teacher: User) -> None:
    course = add_course(uow)
    hdrs = teacher_headers(teacher)
    assert client.get(f"/v1/courses/{course.id}", headers=hdrs).json()["price"] == 49.0

    resp = client.patch(f"/v1/courses/{course.id}", json={"price": 19.5}, headers=hdrs)
    assert resp.status_code == 200

    assert client.get(f"/v1/courses/{course.id}", headers=hdrs).json()["price"] == 19.5


def test_categories(client: TestClient, uow, student: User) -> None:
    add_course(uow)
    resp = client.get("/v1/courses/categories", headers=student_headers(student))
    assert resp.json() == ["programming"]


def test_delete(client: TestClient, uow, teacher: User) -> None:
    course = add_course(uow)
    hdrs = teacher_headers(teacher)
    assert client.delete(f"/v1/courses/{course.id}", headers=hdrs).status_code == 204
    assert client.get(f"/v1/courses/{course.id}", headers=hdrs).status_code == 404
    assert client.delete(f"/v1/courses/{course.id}", headers=hdrs).status_code == 404
