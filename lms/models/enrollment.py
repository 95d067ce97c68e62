from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A student's registration in one course.

    total_lessons is frozen at enrollment time from the course content;
    later edits to the course do not move the denominator.  Only the
    ProgressTracker rewrites the progress fields.
    """

    id: UUID
    student_id: UUID
    course_id: UUID
    enrolled_at: int
    total_lessons: int
    completed_lessons: int = 0
    progress: int = 0  # 0-100
    is_completed: bool = False
    completed_at: int | None = None

    @staticmethod
    def new(
        *, student_id: UUID, course_id: UUID, total_lessons: int, enrolled_at: int
    ) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            student_id=student_id,
            course_id=course_id,
            enrolled_at=enrolled_at,
            total_lessons=total_lessons,
        )


@dataclass(frozen=True, slots=True)
class LessonCompletion:
    """Sole source of truth for "this lesson is done" — never updated or deleted."""

    student_id: UUID
    course_id: UUID
    module_index: int
    lesson_index: int
    completed_at: int

    @property
    def key(self) -> tuple[UUID, UUID, int, int]:
        return (self.student_id, self.course_id, self.module_index, self.lesson_index)


@dataclass(frozen=True, slots=True)
class LessonProgress:
    """Result of marking a lesson complete."""

    completed_lessons: int
    total_lessons: int
    progress: int
    is_completed: bool


@dataclass(frozen=True, slots=True)
class EnrollmentStats:
    total: int
    active: int
    completed: int
    by_course: tuple[CourseEnrollmentCount, ...] = ()


@dataclass(frozen=True, slots=True)
class CourseEnrollmentCount:
    course_id: UUID
    count: int
    avg_progress: float
