from __future__ import annotations

import dataclasses
from collections import defaultdict
from typing import Protocol
from uuid import UUID

from lms.models.enrollment import (
    CourseEnrollmentCount,
    Enrollment,
    EnrollmentStats,
    LessonCompletion,
)
from lms.services.cache_keys import FilterSpec

COMPLETED = "completed"
ACTIVE = "active"


class EnrollmentRepo(Protocol):
    async def get_by_id(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None: ...
    async def add(self, enrollment: Enrollment) -> bool: ...
    async def update_progress(
        self,
        enrollment_id: UUID,
        *,
        completed_lessons: int,
        progress: int,
        is_completed: bool,
        completed_at: int | None,
    ) -> Enrollment | None: ...
    async def list(
        self,
        filters: FilterSpec,
        offset: int,
        limit: int,
        student_ids: set[UUID] | None = None,
    ) -> tuple[list[Enrollment], int]: ...
    async def list_for_student(self, student_id: UUID) -> list[Enrollment]: ...
    async def stats(self, top: int = 10) -> EnrollmentStats: ...
    async def add_completion(self, record: LessonCompletion) -> bool: ...
    async def count_completions(self, student_id: UUID, course_id: UUID) -> int: ...
    async def list_completions(
        self, student_id: UUID, course_id: UUID
    ) -> list[LessonCompletion]: ...


def _matches_status(e: Enrollment, status: str | None) -> bool:
    if status is None:
        return True
    return e.is_completed == (status == COMPLETED)


class InMemoryEnrollmentRepo:
    """Dict-backed enrollments and completion records.

    The (student, course) and (student, course, module, lesson) dict
    keys play the role of the database unique indexes.
    """

    def __init__(self) -> None:
        self._by_id: dict[UUID, Enrollment] = {}
        self._by_pair: dict[tuple[UUID, UUID], UUID] = {}
        self._completions: dict[tuple[UUID, UUID, int, int], LessonCompletion] = {}

    async def get_by_id(self, enrollment_id: UUID) -> Enrollment | None:
        return self._by_id.get(enrollment_id)

    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        eid = self._by_pair.get((student_id, course_id))
        return self._by_id.get(eid) if eid is not None else None

    async def add(self, enrollment: Enrollment) -> bool:
        pair = (enrollment.student_id, enrollment.course_id)
        if pair in self._by_pair:
            return False
        self._by_pair[pair] = enrollment.id
        self._by_id[enrollment.id] = enrollment
        return True

    async def update_progress(
        self,
        enrollment_id: UUID,
        *,
        completed_lessons: int,
        progress: int,
        is_completed: bool,
        completed_at: int | None,
    ) -> Enrollment | None:
        e = self._by_id.get(enrollment_id)
        if e is None:
            return None
        updated = dataclasses.replace(
            e,
            completed_lessons=completed_lessons,
            progress=progress,
            is_completed=is_completed,
            # First writer wins; later calls never move the timestamp.
            completed_at=e.completed_at if e.completed_at is not None else completed_at,
        )
        self._by_id[enrollment_id] = updated
        return updated

    async def list(
        self,
        filters: FilterSpec,
        offset: int,
        limit: int,
        student_ids: set[UUID] | None = None,
    ) -> tuple[list[Enrollment], int]:
        matched = [
            e
            for e in self._by_id.values()
            if (filters.course is None or e.course_id == filters.course)
            and (filters.student is None or e.student_id == filters.student)
            and _matches_status(e, filters.status)
            and (student_ids is None or e.student_id in student_ids)
        ]
        matched.sort(key=lambda e: e.enrolled_at, reverse=True)
        return matched[offset : offset + limit], len(matched)

    async def list_for_student(self, student_id: UUID) -> list[Enrollment]:
        rows = [e for e in self._by_id.values() if e.student_id == student_id]
        return sorted(rows, key=lambda e: e.enrolled_at, reverse=True)

    async def stats(self, top: int = 10) -> EnrollmentStats:
        rows = list(self._by_id.values())
        per_course: dict[UUID, list[int]] = defaultdict(list)
        for e in rows:
            per_course[e.course_id].append(e.progress)
        by_course = sorted(
            (
                CourseEnrollmentCount(
                    course_id=cid,
                    count=len(progresses),
                    avg_progress=round(sum(progresses) / len(progresses), 2),
                )
                for cid, progresses in per_course.items()
            ),
            key=lambda c: c.count,
            reverse=True,
        )
        completed = sum(1 for e in rows if e.is_completed)
        return EnrollmentStats(
            total=len(rows),
            active=len(rows) - completed,
            completed=completed,
            by_course=tuple(by_course[:top]),
        )

    async def add_completion(self, record: LessonCompletion) -> bool:
        if record.key in self._completions:
            return False
        self._completions[record.key] = record
        return True

    async def count_completions(self, student_id: UUID, course_id: UUID) -> int:
        return sum(
            1
            for (s, c, _m, _l) in self._completions
            if s == student_id and c == course_id
        )

    async def list_completions(
        self, student_id: UUID, course_id: UUID
    ) -> list[LessonCompletion]:
        rows = [
            r
            for r in self._completions.values()
            if r.student_id == student_id and r.course_id == course_id
        ]
        return sorted(rows, key=lambda r: (r.module_index, r.lesson_index))

    def on_course_deleted(self, course_id: UUID) -> None:
        """Drop the course's enrollments and completion records (CASCADE)."""
        for pair in [p for p in self._by_pair if p[1] == course_id]:
            del self._by_id[self._by_pair.pop(pair)]
        for key in [k for k in self._completions if k[1] == course_id]:
            del self._completions[key]
