from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from lms.models.assignment import (
    PENDING,
    REVIEWED,
    SUBMITTED,
    Assignment,
    AssignmentStats,
    Review,
    Submission,
)
from lms.services.cache_keys import FilterSpec


@dataclass(frozen=True, slots=True)
class StudentScope:
    """Restricts a listing to what one student may see.

    Their own assignments, plus unassigned work in courses they are
    enrolled in.
    """

    student_id: UUID
    enrolled_course_ids: frozenset[UUID]

    def allows(self, a: Assignment) -> bool:
        if a.student_id == self.student_id:
            return True
        return a.student_id is None and a.course_id in self.enrolled_course_ids


class AssignmentRepo(Protocol):
    async def get_by_id(self, assignment_id: UUID) -> Assignment | None: ...
    async def add(self, assignment: Assignment) -> None: ...
    async def find_open(
        self, course_id: UUID, title: str, student_id: UUID
    ) -> Assignment | None: ...
    async def submit(
        self, assignment_id: UUID, student_id: UUID, submission: Submission
    ) -> Assignment | None: ...
    async def review(self, assignment_id: UUID, review: Review) -> Assignment | None: ...
    async def update(self, assignment_id: UUID, **values: object) -> Assignment | None: ...
    async def delete(self, assignment_id: UUID) -> bool: ...
    async def list(
        self,
        filters: FilterSpec,
        offset: int,
        limit: int,
        scope: StudentScope | None = None,
        student_ids: set[UUID] | None = None,
    ) -> tuple[list[Assignment], int]: ...
    async def list_open(self) -> list[Assignment]: ...
    async def stats(self, course_id: UUID | None = None) -> AssignmentStats: ...


def _newest_submission_first(a: Assignment) -> tuple[int, int]:
    submitted_at = a.submission.submitted_at if a.submission else -1
    return (submitted_at, a.created_at)


def _matches_search(
    a: Assignment, search: str | None, student_ids: set[UUID] | None
) -> bool:
    if not search or not search.strip():
        return True
    if student_ids and a.student_id in student_ids:
        return True
    return search.strip().lower() in a.title.lower()


class InMemoryAssignmentRepo:
    """Assignments keyed by id.

    Every transition swaps in a whole new frozen Assignment, so a
    reader sees either the old record or the new one, never a status
    without its review.
    """

    def __init__(self) -> None:
        self._by_id: dict[UUID, Assignment] = {}

    async def get_by_id(self, assignment_id: UUID) -> Assignment | None:
        return self._by_id.get(assignment_id)

    async def add(self, assignment: Assignment) -> None:
        if assignment.id in self._by_id:
            raise ValueError("assignment already exists")
        self._by_id[assignment.id] = assignment

    async def find_open(
        self, course_id: UUID, title: str, student_id: UUID
    ) -> Assignment | None:
        candidates = [
            a
            for a in self._by_id.values()
            if a.course_id == course_id
            and a.title == title
            and a.student_id in (student_id, None)
            and a.status != REVIEWED
        ]
        if not candidates:
            return None
        # the student's own assignment wins over an unassigned template
        return min(candidates, key=lambda a: (a.student_id is None, a.created_at))

    async def submit(
        self, assignment_id: UUID, student_id: UUID, submission: Submission
    ) -> Assignment | None:
        a = self._by_id.get(assignment_id)
        if a is None or a.status == REVIEWED:
            return None
        updated = dataclasses.replace(
            a, student_id=student_id, submission=submission, status=SUBMITTED
        )
        self._by_id[assignment_id] = updated
        return updated

    async def review(self, assignment_id: UUID, review: Review) -> Assignment | None:
        a = self._by_id.get(assignment_id)
        if a is None or a.status != SUBMITTED:
            return None
        updated = dataclasses.replace(a, review=review, status=REVIEWED)
        self._by_id[assignment_id] = updated
        return updated

    async def update(self, assignment_id: UUID, **values: object) -> Assignment | None:
        a = self._by_id.get(assignment_id)
        if a is None:
            return None
        updated = dataclasses.replace(a, **values)  # type: ignore[arg-type]
        self._by_id[assignment_id] = updated
        return updated

    async def delete(self, assignment_id: UUID) -> bool:
        return self._by_id.pop(assignment_id, None) is not None

    async def list(
        self,
        filters: FilterSpec,
        offset: int,
        limit: int,
        scope: StudentScope | None = None,
        student_ids: set[UUID] | None = None,
    ) -> tuple[list[Assignment], int]:
        matched = [
            a
            for a in self._by_id.values()
            if (scope is None or scope.allows(a))
            and (filters.course is None or a.course_id == filters.course)
            and (filters.student is None or a.student_id == filters.student)
            and (filters.status is None or a.status == filters.status)
            and (filters.batch is None or a.batch == filters.batch)
            and _matches_search(a, filters.search, student_ids)
        ]
        matched.sort(key=_newest_submission_first, reverse=True)
        return matched[offset : offset + limit], len(matched)

    async def list_open(self) -> list[Assignment]:
        rows = [a for a in self._by_id.values() if a.status in (PENDING, SUBMITTED)]
        return sorted(rows, key=_newest_submission_first, reverse=True)

    async def stats(self, course_id: UUID | None = None) -> AssignmentStats:
        rows = [
            a for a in self._by_id.values() if course_id is None or a.course_id == course_id
        ]
        return AssignmentStats(
            total=len(rows),
            pending=sum(1 for a in rows if a.status == PENDING),
            submitted=sum(1 for a in rows if a.status == SUBMITTED),
            reviewed=sum(1 for a in rows if a.status == REVIEWED),
        )

    def on_course_deleted(self, course_id: UUID) -> None:
        """Drop every assignment of the course (CASCADE)."""
        for aid in [a.id for a in self._by_id.values() if a.course_id == course_id]:
            del self._by_id[aid]
