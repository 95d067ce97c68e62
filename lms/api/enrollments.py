"""Enrollment and progress endpoints.

  POST /v1/enrollments                          enroll the calling student
  POST /v1/enrollments/progress/{course_id}     mark a lesson complete
  GET  /v1/enrollments/progress/{course_id}     completion detail, cached

Marking a lesson complete is idempotent: repeating the call returns the
same progress and never double-counts.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from lms.api.dependencies import (
    get_enrollment_service,
    get_progress_tracker,
    require_staff,
    require_student,
    service_errors,
)
from lms.models.principal import Principal
from lms.services import views
from lms.services.cache_keys import FilterSpec
from lms.services.enrollment_service import EnrollmentService
from lms.services.progress_tracker import ProgressTracker

router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])

EnrollmentServiceDep = Annotated[EnrollmentService, Depends(get_enrollment_service)]
ProgressTrackerDep = Annotated[ProgressTracker, Depends(get_progress_tracker)]


class EnrollIn(BaseModel):
    course_id: UUID


class EnrollmentOut(BaseModel):
    id: str
    student_id: str
    course_id: str
    enrolled_at: int
    total_lessons: int
    completed_lessons: int
    progress: int
    is_completed: bool
    completed_at: int | None


class LessonCompleteIn(BaseModel):
    module_index: int = Field(ge=0)
    lesson_index: int = Field(ge=0)


class LessonProgressOut(BaseModel):
    completed_lessons: int
    total_lessons: int
    progress: int
    is_completed: bool


@router.post("", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
async def enroll(
    body: EnrollIn,
    enrollments: EnrollmentServiceDep,
    principal: Annotated[Principal, Depends(require_student)],
) -> EnrollmentOut:
    with service_errors():
        enrollment = await enrollments.enroll(principal.user_id, body.course_id)
    return EnrollmentOut(**views.enrollment(enrollment))


@router.get("")
async def list_enrollments(
    enrollments: EnrollmentServiceDep,
    _principal: Annotated[Principal, Depends(require_staff)],
    course: UUID | None = None,
    student: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    search: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict:
    filters = FilterSpec(course=course, student=student, status=status_filter, search=search)
    return await enrollments.list(filters, page, limit)


@router.get("/mine")
async def my_enrollments(
    enrollments: EnrollmentServiceDep,
    principal: Annotated[Principal, Depends(require_student)],
) -> list[dict]:
    return await enrollments.for_student(principal.user_id)


@router.get("/stats")
async def enrollment_stats(
    enrollments: EnrollmentServiceDep,
    _principal: Annotated[Principal, Depends(require_staff)],
) -> dict:
    return await enrollments.stats()


@router.post("/progress/{course_id}", response_model=LessonProgressOut)
async def mark_lesson_complete(
    course_id: UUID,
    body: LessonCompleteIn,
    tracker: ProgressTrackerDep,
    principal: Annotated[Principal, Depends(require_student)],
) -> LessonProgressOut:
    with service_errors():
        progress = await tracker.mark_lesson_complete(
            principal.user_id, course_id, body.module_index, body.lesson_index
        )
    return LessonProgressOut(
        completed_lessons=progress.completed_lessons,
        total_lessons=progress.total_lessons,
        progress=progress.progress,
        is_completed=progress.is_completed,
    )


@router.get("/progress/{course_id}")
async def course_progress(
    course_id: UUID,
    tracker: ProgressTrackerDep,
    principal: Annotated[Principal, Depends(require_student)],
) -> dict:
    with service_errors():
        return await tracker.get_course_progress(principal.user_id, course_id)
