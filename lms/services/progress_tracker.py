"""Lesson completion and enrollment progress.

Progress is always recomputed from the completion records, never
incremented: a retried or duplicated request cannot double-count, and
two concurrent completions converge on the same count.

    mark_lesson_complete
      -> insert completion (duplicate = no-op, unique constraint)
      -> count completions for (student, course)
      -> recompute progress / is_completed, stamp completed_at once
      -> commit
      -> invalidate progress (+ enrollments via fan-out)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from lms.core.clock import Clock, utc_now
from lms.core.errors import NotFoundError, ValidationError
from lms.core.metrics import LESSON_COMPLETIONS
from lms.models.enrollment import LessonCompletion, LessonProgress
from lms.repos.unit_of_work import UnitOfWork
from lms.services import cache_keys, views
from lms.services.cache import CacheStore, read_through
from lms.services.invalidation import InvalidationCoordinator
from lms.services.rounding import percent

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProgressFields:
    completed_lessons: int
    progress: int
    is_completed: bool


def compute_progress(completed: int, total: int) -> ProgressFields:
    """Derive the progress fields from a completion count.

    A course with no lessons never completes and stays at 0%.
    """
    if total <= 0:
        return ProgressFields(completed_lessons=0, progress=0, is_completed=False)
    completed = max(0, min(completed, total))
    return ProgressFields(
        completed_lessons=completed,
        progress=percent(completed, total),
        is_completed=completed >= total,
    )


class ProgressTracker:
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

    async def mark_lesson_complete(
        self,
        student_id: UUID,
        course_id: UUID,
        module_index: int,
        lesson_index: int,
    ) -> LessonProgress:
        if module_index < 0 or lesson_index < 0:
            raise ValidationError("module_index and lesson_index must be >= 0")

        enrollment = await self._uow.enrollments.get_for(student_id, course_id)
        if enrollment is None:
            raise NotFoundError("enrollment", f"{student_id}/{course_id}")

        now = self._clock()
        created = await self._uow.enrollments.add_completion(
            LessonCompletion(
                student_id=student_id,
                course_id=course_id,
                module_index=module_index,
                lesson_index=lesson_index,
                completed_at=now,
            )
        )
        LESSON_COMPLETIONS.labels(result="created" if created else "duplicate").inc()

        count = await self._uow.enrollments.count_completions(student_id, course_id)
        fields = compute_progress(count, enrollment.total_lessons)
        if count > enrollment.total_lessons > 0:
            logger.warning(
                "Completion count %d exceeds total_lessons %d for enrollment=%s",
                count,
                enrollment.total_lessons,
                enrollment.id,
            )

        crossing = fields.is_completed and not enrollment.is_completed
        updated = await self._uow.enrollments.update_progress(
            enrollment.id,
            completed_lessons=fields.completed_lessons,
            progress=fields.progress,
            is_completed=fields.is_completed,
            completed_at=now if crossing else None,
        )
        if updated is None:
            raise NotFoundError("enrollment", enrollment.id)
        await self._uow.commit()
        # progress views are per-student aggregates; there is no entity key
        await self._invalidator.invalidate(cache_keys.PROGRESS)

        if crossing:
            logger.info(
                "Course completed student=%s course=%s", student_id, course_id
            )

        return LessonProgress(
            completed_lessons=updated.completed_lessons,
            total_lessons=updated.total_lessons,
            progress=updated.progress,
            is_completed=updated.is_completed,
        )

    async def get_course_progress(self, student_id: UUID, course_id: UUID) -> dict:
        """Enrollment plus its completion records, cached per student."""
        key = cache_keys.aggregate_key(
            cache_keys.PROGRESS, "course", {"course": str(course_id)}, user_id=student_id
        )

        async def load() -> dict:
            enrollment = await self._uow.enrollments.get_for(student_id, course_id)
            if enrollment is None:
                raise NotFoundError("enrollment", f"{student_id}/{course_id}")
            completions = await self._uow.enrollments.list_completions(
                student_id, course_id
            )
            return {
                "enrollment": views.enrollment(enrollment),
                "completed": [
                    {
                        "module_index": c.module_index,
                        "lesson_index": c.lesson_index,
                        "completed_at": c.completed_at,
                    }
                    for c in completions
                ],
            }

        return await read_through(self._cache, key, self._ttl, load)
