from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

PENDING = "pending"
SUBMITTED = "submitted"
REVIEWED = "reviewed"

STATUSES = (PENDING, SUBMITTED, REVIEWED)


@dataclass(frozen=True, slots=True)
class Submission:
    answer: str
    submitted_at: int


@dataclass(frozen=True, slots=True)
class Review:
    feedback: str
    reviewed_by: UUID
    reviewed_at: int


@dataclass(frozen=True, slots=True)
class AssignmentTemplate:
    """Fields shared by every assignment fanned out from one template."""

    title: str
    description: str
    module_index: int | None = None
    due_date: int | None = None


@dataclass(frozen=True, slots=True)
class Assignment:
    id: UUID
    course_id: UUID
    title: str
    description: str
    created_by: UUID
    created_at: int
    status: str = PENDING  # pending|submitted|reviewed
    student_id: UUID | None = None  # None for unassigned templates
    batch: str | None = None
    module_index: int | None = None
    due_date: int | None = None
    submission: Submission | None = None
    review: Review | None = None  # present only once status == reviewed

    @staticmethod
    def from_template(
        *,
        course_id: UUID,
        template: AssignmentTemplate,
        created_by: UUID,
        created_at: int,
        student_id: UUID | None = None,
        batch: str | None = None,
    ) -> Assignment:
        return Assignment(
            id=uuid4(),
            course_id=course_id,
            title=template.title,
            description=template.description,
            module_index=template.module_index,
            due_date=template.due_date,
            created_by=created_by,
            created_at=created_at,
            student_id=student_id,
            batch=batch,
        )


@dataclass(frozen=True, slots=True)
class BatchResult:
    created_count: int
    requested_count: int
    batch: str

    @property
    def complete(self) -> bool:
        return self.created_count == self.requested_count


@dataclass(frozen=True, slots=True)
class AssignmentStats:
    total: int
    pending: int
    submitted: int
    reviewed: int
