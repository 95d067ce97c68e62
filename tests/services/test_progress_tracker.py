from __future__ import annotations

import asyncio

import pytest

from lms.core.errors import NotFoundError, ValidationError
from lms.services.enrollment_service import EnrollmentService
from lms.services.invalidation import InvalidationCoordinator
from lms.services.progress_tracker import ProgressTracker, compute_progress
from tests.conftest import Backend, add_course, add_user


def _tracker(backend: Backend) -> ProgressTracker:
    return ProgressTracker(
        backend.uow, backend.cache, backend.invalidator, clock=backend.clock
    )


def _enroll(backend: Backend, lessons: int):
    student = add_user(backend.uow)
    course = add_course(backend.uow, lessons=lessons)
    service = EnrollmentService(
        backend.uow, backend.cache, backend.invalidator, clock=backend.clock
    )
    asyncio.run(service.enroll(student.id, course.id))
    return student, course


# ---- compute_progress ----


def test_zero_lessons_never_completes() -> None:
    fields = compute_progress(3, 0)
    assert (fields.completed_lessons, fields.progress, fields.is_completed) == (0, 0, False)


def test_five_of_eleven_rounds_to_45() -> None:
    assert compute_progress(5, 11).progress == 45


def test_half_rounds_up() -> None:
    assert compute_progress(1, 8).progress == 13


def test_count_is_clamped_to_total() -> None:
    fields = compute_progress(7, 4)
    assert fields.completed_lessons == 4
    assert fields.progress == 100
    assert fields.is_completed is True


# ---- mark_lesson_complete ----


def test_completing_last_lesson_completes_course(backend: Backend) -> None:
    student, course = _enroll(backend, lessons=4)
    tracker = _tracker(backend)

    for lesson in range(3):
        result = asyncio.run(tracker.mark_lesson_complete(student.id, course.id, 0, lesson))
    assert (result.completed_lessons, result.progress, result.is_completed) == (3, 75, False)

    backend.clock.advance(60)
    result = asyncio.run(tracker.mark_lesson_complete(student.id, course.id, 1, 0))
    assert (result.completed_lessons, result.total_lessons) == (4, 4)
    assert result.progress == 100
    assert result.is_completed is True

    enrollment = asyncio.run(backend.uow.enrollments.get_for(student.id, course.id))
    assert enrollment.completed_at == backend.clock.now


def test_repeated_completion_is_idempotent(backend: Backend) -> None:
    student, course = _enroll(backend, lessons=4)
    tracker = _tracker(backend)

    first = asyncio.run(tracker.mark_lesson_complete(student.id, course.id, 0, 1))
    second = asyncio.run(tracker.mark_lesson_complete(student.id, course.id, 0, 1))

    assert first == second
    assert first.completed_lessons == 1
    assert first.progress == 25


def test_completed_at_is_stamped_once(backend: Backend) -> None:
    student, course = _enroll(backend, lessons=1)
    tracker = _tracker(backend)

    asyncio.run(tracker.mark_lesson_complete(student.id, course.id, 0, 0))
    stamped = backend.clock.now
    backend.clock.advance(3600)
    asyncio.run(tracker.mark_lesson_complete(student.id, course.id, 0, 0))

    enrollment = asyncio.run(backend.uow.enrollments.get_for(student.id, course.id))
    assert enrollment.completed_at == stamped


def test_course_without_lessons_stays_at_zero(backend: Backend) -> None:
    student, course = _enroll(backend, lessons=0)
    result = asyncio.run(
        _tracker(backend).mark_lesson_complete(student.id, course.id, 0, 0)
    )
    assert (result.progress, result.is_completed) == (0, False)


def test_requires_enrollment(backend: Backend) -> None:
    student = add_user(backend.uow)
    course = add_course(backend.uow)
    with pytest.raises(NotFoundError):
        asyncio.run(_tracker(backend).mark_lesson_complete(student.id, course.id, 0, 0))


def test_negative_indexes_rejected(backend: Backend) -> None:
    student, course = _enroll(backend, lessons=2)
    with pytest.raises(ValidationError):
        asyncio.run(_tracker(backend).mark_lesson_complete(student.id, course.id, -1, 0))


# ---- get_course_progress ----


def test_course_progress_reflects_new_completion(backend: Backend) -> None:
    student, course = _enroll(backend, lessons=4)
    tracker = _tracker(backend)

    before = asyncio.run(tracker.get_course_progress(student.id, course.id))
    assert before["completed"] == []
    assert before["enrollment"]["progress"] == 0

    asyncio.run(tracker.mark_lesson_complete(student.id, course.id, 1, 0))
    after = asyncio.run(tracker.get_course_progress(student.id, course.id))

    assert after["enrollment"]["progress"] == 25
    assert [(c["module_index"], c["lesson_index"]) for c in after["completed"]] == [(1, 0)]


def test_completion_refreshes_cached_dashboard(backend: Backend) -> None:
    student, course = _enroll(backend, lessons=2)
    service = EnrollmentService(backend.uow, backend.cache, backend.invalidator)

    assert asyncio.run(service.for_student(student.id))[0]["progress"] == 0
    asyncio.run(_tracker(backend).mark_lesson_complete(student.id, course.id, 0, 0))
    assert asyncio.run(service.for_student(student.id))[0]["progress"] == 50


class _RecordingInvalidator(InvalidationCoordinator):
    def __init__(self, cache) -> None:
        super().__init__(cache)
        self.calls: list[tuple[str, object]] = []

    async def invalidate(self, resource, entity_id=None) -> None:
        self.calls.append((resource, entity_id))
        await super().invalidate(resource, entity_id)


def test_completion_purges_progress_views_without_entity_key(backend: Backend) -> None:
    student, course = _enroll(backend, lessons=2)
    recorder = _RecordingInvalidator(backend.cache)
    tracker = ProgressTracker(backend.uow, backend.cache, recorder, clock=backend.clock)

    asyncio.run(tracker.mark_lesson_complete(student.id, course.id, 0, 0))

    assert recorder.calls == [("progress", None)]
