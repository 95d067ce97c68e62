from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from lms.core.errors import InvalidStateError, NotFoundError, ValidationError
from lms.models.assignment import PENDING, REVIEWED, SUBMITTED, AssignmentTemplate
from lms.models.principal import Principal
from lms.models.user import STUDENT, TEACHER
from lms.repos.assignment_repo import InMemoryAssignmentRepo
from lms.services.assignment_lifecycle import AssignmentLifecycle
from lms.services.cache_keys import FilterSpec
from lms.services.enrollment_service import EnrollmentService
from tests.conftest import BATCH, Backend, add_course, add_user

_TEMPLATE = AssignmentTemplate(title="Essay", description="Write 500 words", module_index=0)


def _lifecycle(backend: Backend) -> AssignmentLifecycle:
    return AssignmentLifecycle(
        backend.uow, backend.cache, backend.invalidator, clock=backend.clock
    )


def _enroll(backend: Backend, student, course) -> None:
    service = EnrollmentService(backend.uow, backend.cache, backend.invalidator)
    asyncio.run(service.enroll(student.id, course.id))


class _FailingAfter(InMemoryAssignmentRepo):
    """Accepts ``n`` inserts, then fails like a dropped connection."""

    def __init__(self, n: int) -> None:
        super().__init__()
        self._left = n

    async def add(self, assignment):
        if self._left == 0:
            raise ConnectionError("database went away")
        self._left -= 1
        await super().add(assignment)


@pytest.fixture
def setup(backend: Backend):
    teacher = add_user(backend.uow, "Grace", role=TEACHER)
    student = add_user(backend.uow, "Ada")
    course = add_course(backend.uow)
    return teacher, student, course


def _pending_for(backend: Backend, setup):
    teacher, student, course = setup
    lifecycle = _lifecycle(backend)
    asyncio.run(lifecycle.create_batch(course.id, BATCH, teacher.id, _TEMPLATE))
    rows, _ = asyncio.run(
        backend.uow.assignments.list(FilterSpec(student=student.id), 0, 10)
    )
    return rows[0]


# ---- batch creation ----


def test_batch_creates_one_pending_assignment_per_student(backend: Backend, setup) -> None:
    teacher, _, course = setup
    add_user(backend.uow, "Bob")
    add_user(backend.uow, "Cy")
    add_user(backend.uow, "Dee", batch="2025-fall")

    result = asyncio.run(
        _lifecycle(backend).create_batch(course.id, BATCH, teacher.id, _TEMPLATE)
    )

    assert (result.created_count, result.requested_count, result.complete) == (3, 3, True)
    rows, total = asyncio.run(backend.uow.assignments.list(FilterSpec(), 0, 10))
    assert total == 3
    assert {a.status for a in rows} == {PENDING}
    assert {(a.course_id, a.module_index, a.title, a.batch) for a in rows} == {
        (course.id, 0, "Essay", BATCH)
    }
    assert len({a.student_id for a in rows}) == 3


def test_batch_stops_at_first_failure(backend: Backend, setup) -> None:
    teacher, _, course = setup
    add_user(backend.uow, "Bob")
    add_user(backend.uow, "Cy")
    backend.uow.assignments = _FailingAfter(2)

    result = asyncio.run(
        _lifecycle(backend).create_batch(course.id, BATCH, teacher.id, _TEMPLATE)
    )

    assert (result.created_count, result.requested_count) == (2, 3)
    assert result.complete is False


def test_batch_must_match_course_batch(backend: Backend, setup) -> None:
    teacher, _, course = setup
    with pytest.raises(NotFoundError):
        asyncio.run(
            _lifecycle(backend).create_batch(course.id, "2025-fall", teacher.id, _TEMPLATE)
        )


def test_batch_with_no_students(backend: Backend) -> None:
    teacher = add_user(backend.uow, "Grace", role=TEACHER)
    course = add_course(backend.uow, batch="empty-batch")
    result = asyncio.run(
        _lifecycle(backend).create_batch(course.id, "empty-batch", teacher.id, _TEMPLATE)
    )
    assert (result.created_count, result.requested_count) == (0, 0)


def test_blank_title_rejected(backend: Backend, setup) -> None:
    teacher, _, course = setup
    with pytest.raises(ValidationError):
        asyncio.run(
            _lifecycle(backend).create(
                course.id, teacher.id, AssignmentTemplate(title=" ", description="")
            )
        )


# ---- transitions ----


def test_review_requires_submission(backend: Backend, setup) -> None:
    teacher = setup[0]
    pending = _pending_for(backend, setup)

    with pytest.raises(InvalidStateError):
        asyncio.run(_lifecycle(backend).review(pending.id, "nice", teacher.id))

    current = asyncio.run(backend.uow.assignments.get_by_id(pending.id))
    assert current.status == PENDING
    assert current.review is None


def test_submit_then_review(backend: Backend, setup) -> None:
    teacher, student, _ = setup
    pending = _pending_for(backend, setup)
    lifecycle = _lifecycle(backend)

    submitted = asyncio.run(lifecycle.submit(pending.id, student.id, "my essay"))
    assert submitted.status == SUBMITTED
    assert submitted.submission.answer == "my essay"

    backend.clock.advance(30)
    reviewed = asyncio.run(lifecycle.review(pending.id, "well argued", teacher.id))
    assert reviewed.status == REVIEWED
    assert reviewed.review.feedback == "well argued"
    assert reviewed.review.reviewed_by == teacher.id
    assert reviewed.review.reviewed_at == backend.clock.now


def test_resubmit_before_review_replaces_answer(backend: Backend, setup) -> None:
    _, student, _ = setup
    pending = _pending_for(backend, setup)
    lifecycle = _lifecycle(backend)

    asyncio.run(lifecycle.submit(pending.id, student.id, "draft"))
    again = asyncio.run(lifecycle.submit(pending.id, student.id, "final"))
    assert again.submission.answer == "final"


def test_reviewed_is_terminal(backend: Backend, setup) -> None:
    teacher, student, _ = setup
    pending = _pending_for(backend, setup)
    lifecycle = _lifecycle(backend)
    asyncio.run(lifecycle.submit(pending.id, student.id, "essay"))
    asyncio.run(lifecycle.review(pending.id, "ok", teacher.id))

    with pytest.raises(InvalidStateError):
        asyncio.run(lifecycle.submit(pending.id, student.id, "late change"))
    with pytest.raises(InvalidStateError):
        asyncio.run(lifecycle.review(pending.id, "again", teacher.id))


def test_cannot_submit_someone_elses_assignment(backend: Backend, setup) -> None:
    pending = _pending_for(backend, setup)
    other = add_user(backend.uow, "Eve", batch=None)
    with pytest.raises(NotFoundError):
        asyncio.run(_lifecycle(backend).submit(pending.id, other.id, "mine now"))


def test_empty_answer_rejected(backend: Backend, setup) -> None:
    _, student, _ = setup
    pending = _pending_for(backend, setup)
    with pytest.raises(ValidationError):
        asyncio.run(_lifecycle(backend).submit(pending.id, student.id, "   "))


def test_review_unknown_assignment(backend: Backend, setup) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(_lifecycle(backend).review(uuid4(), "?", setup[0].id))


# ---- student-authored submissions ----


def test_submit_new_requires_enrollment(backend: Backend, setup) -> None:
    _, student, course = setup
    with pytest.raises(NotFoundError):
        asyncio.run(
            _lifecycle(backend).submit_new(student.id, course.id, "Essay", "", "text")
        )


def test_submit_new_creates_submitted_assignment(backend: Backend, setup) -> None:
    _, student, course = setup
    _enroll(backend, student, course)

    a = asyncio.run(
        _lifecycle(backend).submit_new(student.id, course.id, "Reflection", "Week 1", "text")
    )
    assert a.status == SUBMITTED
    assert a.student_id == student.id
    assert a.created_by == student.id


def test_submit_new_claims_open_template(backend: Backend, setup) -> None:
    teacher, student, course = setup
    _enroll(backend, student, course)
    lifecycle = _lifecycle(backend)
    template = asyncio.run(lifecycle.create(course.id, teacher.id, _TEMPLATE))

    a = asyncio.run(lifecycle.submit_new(student.id, course.id, "Essay", "", "answer"))

    assert a.id == template.id
    assert a.student_id == student.id
    assert a.status == SUBMITTED


# ---- edits ----


def test_update_and_delete(backend: Backend, setup) -> None:
    pending = _pending_for(backend, setup)
    lifecycle = _lifecycle(backend)

    updated = asyncio.run(lifecycle.update(pending.id, title="Essay v2", due_date=None))
    assert updated.title == "Essay v2"

    with pytest.raises(ValidationError):
        asyncio.run(lifecycle.update(pending.id, status=REVIEWED))

    asyncio.run(lifecycle.delete(pending.id))
    with pytest.raises(NotFoundError):
        asyncio.run(lifecycle.delete(pending.id))


# ---- reads ----


def test_student_sees_own_and_open_course_work(backend: Backend, setup) -> None:
    teacher, student, course = setup
    _enroll(backend, student, course)
    other = add_user(backend.uow, "Bob")
    lifecycle = _lifecycle(backend)
    asyncio.run(lifecycle.create_batch(course.id, BATCH, teacher.id, _TEMPLATE))
    asyncio.run(lifecycle.create(course.id, teacher.id, AssignmentTemplate("Quiz prep", "")))

    as_student = Principal(user_id=student.id, role=STUDENT)
    listed = asyncio.run(lifecycle.list(as_student, FilterSpec()))

    owners = {item["student_id"] for item in listed["items"]}
    assert owners == {str(student.id), None}
    assert listed["total"] == 2

    as_teacher = Principal(user_id=teacher.id, role=TEACHER)
    assert asyncio.run(lifecycle.list(as_teacher, FilterSpec()))["total"] == 3
    assert str(other.id) in {
        i["student_id"] for i in asyncio.run(lifecycle.list(as_teacher, FilterSpec()))["items"]
    }


def test_listing_refreshes_after_submit(backend: Backend, setup) -> None:
    teacher, student, _ = setup
    pending = _pending_for(backend, setup)
    lifecycle = _lifecycle(backend)
    as_teacher = Principal(user_id=teacher.id, role=TEACHER)

    before = asyncio.run(lifecycle.list(as_teacher, FilterSpec(status=SUBMITTED)))
    assert before["total"] == 0
    asyncio.run(lifecycle.submit(pending.id, student.id, "done"))
    after = asyncio.run(lifecycle.list(as_teacher, FilterSpec(status=SUBMITTED)))
    assert after["total"] == 1
    assert after["items"][0]["student"]["name"] == "Ada"


def test_get_hides_other_students_work(backend: Backend, setup) -> None:
    pending = _pending_for(backend, setup)
    lifecycle = _lifecycle(backend)
    owner = Principal(user_id=pending.student_id, role=STUDENT)
    stranger = Principal(user_id=uuid4(), role=STUDENT)

    assert asyncio.run(lifecycle.get(pending.id, owner))["title"] == "Essay"
    with pytest.raises(NotFoundError):
        asyncio.run(lifecycle.get(pending.id, stranger))


def test_pending_and_stats(backend: Backend, setup) -> None:
    teacher, student, course = setup
    add_user(backend.uow, "Bob")
    lifecycle = _lifecycle(backend)
    asyncio.run(lifecycle.create_batch(course.id, BATCH, teacher.id, _TEMPLATE))
    mine = asyncio.run(
        backend.uow.assignments.list(FilterSpec(student=student.id), 0, 1)
    )[0][0]
    asyncio.run(lifecycle.submit(mine.id, student.id, "done"))
    asyncio.run(lifecycle.review(mine.id, "ok", teacher.id))

    assert len(asyncio.run(lifecycle.pending())) == 1
    stats = asyncio.run(lifecycle.stats(course.id))
    assert (stats.total, stats.pending, stats.submitted, stats.reviewed) == (2, 1, 0, 1)


def test_enrolling_reveals_course_work_in_cached_listing(backend: Backend, setup) -> None:
    teacher, student, course = setup
    lifecycle = _lifecycle(backend)
    asyncio.run(lifecycle.create(course.id, teacher.id, _TEMPLATE))
    as_student = Principal(user_id=student.id, role=STUDENT)

    assert asyncio.run(lifecycle.list(as_student, FilterSpec()))["total"] == 0
    _enroll(backend, student, course)

    listed = asyncio.run(lifecycle.list(as_student, FilterSpec()))
    assert listed["total"] == 1
    assert listed["items"][0]["title"] == "Essay"
