"""Assignment state machine.

    pending ──submit──▶ submitted ──review──▶ reviewed
                           ▲
    (student-authored work is created directly in submitted)

reviewed is terminal.  Both transitions are conditional single-row
writes in the repository, so a review can never land on anything but
a submitted assignment, even when two reviewers race.
"""

from __future__ import annotations

import logging
from typing import NoReturn
from uuid import UUID, uuid4

from lms.core.clock import Clock, utc_now
from lms.core.errors import InvalidStateError, NotFoundError, ValidationError
from lms.core.metrics import ASSIGNMENT_TRANSITIONS
from lms.models.assignment import (
    REVIEWED,
    SUBMITTED,
    Assignment,
    AssignmentStats,
    AssignmentTemplate,
    BatchResult,
    Review,
    Submission,
)
from lms.models.principal import Principal
from lms.repos.assignment_repo import StudentScope
from lms.repos.unit_of_work import UnitOfWork
from lms.services import cache_keys, views
from lms.services.cache import CacheStore, read_through
from lms.services.cache_keys import FilterSpec
from lms.services.invalidation import InvalidationCoordinator

logger = logging.getLogger(__name__)

_EDITABLE = ("title", "description", "due_date")


class AssignmentLifecycle:
    def __init__(
        self,
        uow: UnitOfWork,
        cache: CacheStore,
        invalidator: InvalidationCoordinator,
        *,
        ttl_seconds: int = 300,
        clock: Clock = utc_now,
    ) -> None:
        self._uow = uow
        self._cache = cache
        self._invalidator = invalidator
        self._ttl = ttl_seconds
        self._clock = clock

    # --- writes ---

    async def create(
        self, course_id: UUID, created_by: UUID, template: AssignmentTemplate
    ) -> Assignment:
        """Unassigned work for a course; students claim it by submitting."""
        _check_template(template)
        course = await self._uow.courses.get_by_id(course_id)
        if course is None:
            raise NotFoundError("course", course_id)

        assignment = Assignment.from_template(
            course_id=course_id,
            template=template,
            created_by=created_by,
            created_at=self._clock(),
        )
        await self._uow.assignments.add(assignment)
        await self._committed(assignment.id, "created")
        return assignment

    async def create_batch(
        self,
        course_id: UUID,
        batch_name: str,
        created_by: UUID,
        template: AssignmentTemplate,
    ) -> BatchResult:
        """One pending assignment per student in ``batch_name``.

        Each assignment is committed on its own.  The first failure stops
        the loop; assignments already created stay, and the result
        reports how far it got.
        """
        _check_template(template)
        course = await self._uow.courses.get_by_id(course_id)
        if course is None or course.batch.name != batch_name:
            raise NotFoundError("course batch", f"{course_id}/{batch_name}")

        students = await self._uow.users.list_students_in_batch(batch_name)
        created_at = self._clock()
        created = 0
        for student in students:
            try:
                await self._uow.assignments.add(
                    Assignment.from_template(
                        course_id=course_id,
                        template=template,
                        created_by=created_by,
                        created_at=created_at,
                        student_id=student.id,
                        batch=batch_name,
                    )
                )
                await self._uow.commit()
            except Exception:
                logger.exception(
                    "Batch assignment stopped at student=%s after %d of %d",
                    student.id,
                    created,
                    len(students),
                )
                await self._uow.rollback()
                break
            created += 1

        if created:
            ASSIGNMENT_TRANSITIONS.labels(transition="created").inc(created)
            await self._invalidator.invalidate(cache_keys.ASSIGNMENTS)
        logger.info(
            "Batch assignment course=%s batch=%s created=%d/%d",
            course_id,
            batch_name,
            created,
            len(students),
        )
        return BatchResult(
            created_count=created, requested_count=len(students), batch=batch_name
        )

    async def submit(
        self, assignment_id: UUID, student_id: UUID, answer: str
    ) -> Assignment:
        if not answer or not answer.strip():
            raise ValidationError("answer must not be empty")
        existing = await self._uow.assignments.get_by_id(assignment_id)
        if existing is None:
            raise NotFoundError("assignment", assignment_id)
        if existing.student_id not in (None, student_id):
            raise NotFoundError("assignment", assignment_id)
        if existing.status == REVIEWED:
            raise InvalidStateError("assignment has already been reviewed")

        updated = await self._uow.assignments.submit(
            assignment_id,
            student_id,
            Submission(answer=answer, submitted_at=self._clock()),
        )
        if updated is None:
            # reviewed or deleted between the read and the write
            await self._raise_for_missed_transition(assignment_id, "submit")
        await self._committed(assignment_id, "submitted")
        return updated

    async def submit_new(
        self,
        student_id: UUID,
        course_id: UUID,
        title: str,
        description: str,
        answer: str,
        module_index: int | None = None,
    ) -> Assignment:
        """Record student-authored work, or submit against open work of the same title."""
        if not answer or not answer.strip():
            raise ValidationError("answer must not be empty")
        enrollment = await self._uow.enrollments.get_for(student_id, course_id)
        if enrollment is None:
            raise NotFoundError("enrollment", f"{student_id}/{course_id}")

        existing = await self._uow.assignments.find_open(course_id, title, student_id)
        if existing is not None:
            return await self.submit(existing.id, student_id, answer)

        now = self._clock()
        assignment = Assignment(
            id=uuid4(),
            course_id=course_id,
            title=title,
            description=description,
            created_by=student_id,
            created_at=now,
            status=SUBMITTED,
            student_id=student_id,
            module_index=module_index,
            submission=Submission(answer=answer, submitted_at=now),
        )
        await self._uow.assignments.add(assignment)
        await self._committed(assignment.id, "submitted")
        return assignment

    async def review(
        self, assignment_id: UUID, feedback: str, reviewer_id: UUID
    ) -> Assignment:
        updated = await self._uow.assignments.review(
            assignment_id,
            Review(feedback=feedback, reviewed_by=reviewer_id, reviewed_at=self._clock()),
        )
        if updated is None:
            await self._raise_for_missed_transition(assignment_id, "review")
        await self._committed(assignment_id, "reviewed")
        logger.info("Assignment reviewed id=%s reviewer=%s", assignment_id, reviewer_id)
        return updated

    async def update(self, assignment_id: UUID, **changes: object) -> Assignment:
        unknown = set(changes) - set(_EDITABLE)
        if unknown:
            raise ValidationError(f"cannot update fields: {', '.join(sorted(unknown))}")
        values = {k: v for k, v in changes.items() if v is not None}
        if "title" in values and not str(values["title"]).strip():
            raise ValidationError("title must not be empty")

        updated = await self._uow.assignments.update(assignment_id, **values)
        if updated is None:
            raise NotFoundError("assignment", assignment_id)
        await self._committed(assignment_id, "updated")
        return updated

    async def delete(self, assignment_id: UUID) -> None:
        if not await self._uow.assignments.delete(assignment_id):
            raise NotFoundError("assignment", assignment_id)
        await self._committed(assignment_id, "deleted")

    # --- reads ---

    async def get(self, assignment_id: UUID, principal: Principal) -> dict:
        key = cache_keys.entity_key(cache_keys.ASSIGNMENTS, assignment_id)

        async def load() -> dict:
            a = await self._uow.assignments.get_by_id(assignment_id)
            if a is None:
                raise NotFoundError("assignment", assignment_id)
            return (await views.assignments_with_refs(self._uow, [a]))[0]

        view = await read_through(self._cache, key, self._ttl, load)
        if principal.is_student:
            owner = view["student_id"]
            if owner is not None and owner != str(principal.user_id):
                raise NotFoundError("assignment", assignment_id)
        return view

    async def list(
        self,
        principal: Principal,
        filters: FilterSpec,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        key = cache_keys.list_key(
            cache_keys.ASSIGNMENTS, filters, page=page, limit=limit, user_id=principal.user_id
        )

        async def load() -> dict:
            scope = None
            if principal.is_student:
                enrolled = await self._uow.enrollments.list_for_student(principal.user_id)
                scope = StudentScope(
                    student_id=principal.user_id,
                    enrolled_course_ids=frozenset(e.course_id for e in enrolled),
                )
            student_ids = None
            if filters.search and filters.search.strip():
                student_ids = await self._uow.users.search_ids(filters.search.strip())
            rows, total = await self._uow.assignments.list(
                filters, (page - 1) * limit, limit, scope=scope, student_ids=student_ids
            )
            return {
                "items": await views.assignments_with_refs(self._uow, rows),
                "total": total,
                "page": page,
                "limit": limit,
            }

        return await read_through(self._cache, key, self._ttl, load)

    async def pending(self) -> list[dict]:
        key = cache_keys.aggregate_key(cache_keys.ASSIGNMENTS, "pending")

        async def load() -> list[dict]:
            rows = await self._uow.assignments.list_open()
            return await views.assignments_with_refs(self._uow, rows)

        return await read_through(self._cache, key, self._ttl, load)

    async def stats(self, course_id: UUID | None = None) -> AssignmentStats:
        return await self._uow.assignments.stats(course_id)

    # --- helpers ---

    async def _committed(self, assignment_id: UUID, transition: str) -> None:
        await self._uow.commit()
        await self._invalidator.invalidate(cache_keys.ASSIGNMENTS, assignment_id)
        ASSIGNMENT_TRANSITIONS.labels(transition=transition).inc()

    async def _raise_for_missed_transition(
        self, assignment_id: UUID, action: str
    ) -> NoReturn:
        current = await self._uow.assignments.get_by_id(assignment_id)
        if current is None:
            raise NotFoundError("assignment", assignment_id)
        logger.warning(
            "Rejected %s on assignment=%s in status=%s", action, assignment_id, current.status
        )
        if action == "review":
            raise InvalidStateError(
                f"only submitted assignments can be reviewed (status is {current.status})"
            )
        raise InvalidStateError("assignment has already been reviewed")


def _check_template(template: AssignmentTemplate) -> None:
    if not template.title or not template.title.strip():
        raise ValidationError("title must not be empty")
