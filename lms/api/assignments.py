"""Assignment endpoints.

Staff create work (for a whole course, or fanned out to every student
of a batch) and review submissions; students submit.  Review is only
legal on a submitted assignment; anything else is a 400.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from lms.api.dependencies import (
    get_assignment_lifecycle,
    require_staff,
    require_student,
    require_user,
    service_errors,
)
from lms.models.assignment import STATUSES, AssignmentTemplate
from lms.models.principal import Principal
from lms.services import views
from lms.services.assignment_lifecycle import AssignmentLifecycle
from lms.services.cache_keys import FilterSpec

router = APIRouter(prefix="/v1/assignments", tags=["assignments"])

LifecycleDep = Annotated[AssignmentLifecycle, Depends(get_assignment_lifecycle)]


class AssignmentCreateIn(BaseModel):
    course_id: UUID
    title: str = Field(min_length=1)
    description: str = ""
    module_index: int | None = Field(default=None, ge=0)
    due_date: int | None = None

    def template(self) -> AssignmentTemplate:
        return AssignmentTemplate(
            title=self.title,
            description=self.description,
            module_index=self.module_index,
            due_date=self.due_date,
        )


class BatchCreateIn(AssignmentCreateIn):
    batch: str = Field(min_length=1)


class BatchOut(BaseModel):
    created_count: int
    requested_count: int
    batch: str


class SubmitIn(BaseModel):
    answer: str = Field(min_length=1)


class SubmitNewIn(BaseModel):
    course_id: UUID
    title: str = Field(min_length=1)
    description: str = ""
    answer: str = Field(min_length=1)
    module_index: int | None = Field(default=None, ge=0)


class ReviewIn(BaseModel):
    feedback: str = ""


class AssignmentUpdateIn(BaseModel):
    title: str | None = None
    description: str | None = None
    due_date: int | None = None


@router.get("")
async def list_assignments(
    lifecycle: LifecycleDep,
    principal: Annotated[Principal, Depends(require_user)],
    course: UUID | None = None,
    student: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    batch: str | None = None,
    search: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict:
    if status_filter is not None and status_filter not in STATUSES:
        status_filter = None
    filters = FilterSpec(
        course=course,
        student=student,
        status=status_filter,
        batch=batch,
        search=search,
    )
    return await lifecycle.list(principal, filters, page, limit)


@router.get("/pending")
async def pending_assignments(
    lifecycle: LifecycleDep,
    _principal: Annotated[Principal, Depends(require_staff)],
) -> list[dict]:
    return await lifecycle.pending()


@router.get("/stats")
async def assignment_stats(
    lifecycle: LifecycleDep,
    _principal: Annotated[Principal, Depends(require_staff)],
    course: UUID | None = None,
) -> dict:
    stats = await lifecycle.stats(course)
    return {
        "total": stats.total,
        "pending": stats.pending,
        "submitted": stats.submitted,
        "reviewed": stats.reviewed,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_assignment(
    body: AssignmentCreateIn,
    lifecycle: LifecycleDep,
    principal: Annotated[Principal, Depends(require_staff)],
) -> dict:
    with service_errors():
        assignment = await lifecycle.create(
            body.course_id, principal.user_id, body.template()
        )
    return views.assignment(assignment)


@router.post("/batch", response_model=BatchOut, status_code=status.HTTP_201_CREATED)
async def create_batch_assignments(
    body: BatchCreateIn,
    lifecycle: LifecycleDep,
    principal: Annotated[Principal, Depends(require_staff)],
) -> BatchOut:
    with service_errors():
        result = await lifecycle.create_batch(
            body.course_id, body.batch, principal.user_id, body.template()
        )
    return BatchOut(
        created_count=result.created_count,
        requested_count=result.requested_count,
        batch=result.batch,
    )


@router.post("/submit", status_code=status.HTTP_201_CREATED)
async def submit_new_assignment(
    body: SubmitNewIn,
    lifecycle: LifecycleDep,
    principal: Annotated[Principal, Depends(require_student)],
) -> dict:
    with service_errors():
        assignment = await lifecycle.submit_new(
            principal.user_id,
            body.course_id,
            body.title,
            body.description,
            body.answer,
            body.module_index,
        )
    return views.assignment(assignment)


@router.get("/{assignment_id}")
async def get_assignment(
    assignment_id: UUID,
    lifecycle: LifecycleDep,
    principal: Annotated[Principal, Depends(require_user)],
) -> dict:
    with service_errors():
        return await lifecycle.get(assignment_id, principal)


@router.post("/{assignment_id}/submit")
async def submit_assignment(
    assignment_id: UUID,
    body: SubmitIn,
    lifecycle: LifecycleDep,
    principal: Annotated[Principal, Depends(require_student)],
) -> dict:
    with service_errors():
        assignment = await lifecycle.submit(assignment_id, principal.user_id, body.answer)
    return views.assignment(assignment)


@router.post("/{assignment_id}/review")
async def review_assignment(
    assignment_id: UUID,
    body: ReviewIn,
    lifecycle: LifecycleDep,
    principal: Annotated[Principal, Depends(require_staff)],
) -> dict:
    with service_errors():
        assignment = await lifecycle.review(
            assignment_id, body.feedback, principal.user_id
        )
    return views.assignment(assignment)


@router.patch("/{assignment_id}")
async def update_assignment(
    assignment_id: UUID,
    body: AssignmentUpdateIn,
    lifecycle: LifecycleDep,
    _principal: Annotated[Principal, Depends(require_staff)],
) -> dict:
    with service_errors():
        assignment = await lifecycle.update(
            assignment_id,
            title=body.title,
            description=body.description,
            due_date=body.due_date,
        )
    return views.assignment(assignment)


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_assignment(
    assignment_id: UUID,
    lifecycle: LifecycleDep,
    _principal: Annotated[Principal, Depends(require_staff)],
) -> None:
    with service_errors():
        await lifecycle.delete(assignment_id)
