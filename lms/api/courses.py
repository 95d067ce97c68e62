"""Course catalog endpoints.

Anyone with an identity may browse published courses; staff manage
the catalog.  Listings and details are served through the read-through
cache and purged by every catalog write.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from lms.api.dependencies import (
    get_course_service,
    require_staff,
    require_user,
    service_errors,
)
from lms.models.course import Batch, CourseChanges, CourseModule, Lesson
from lms.models.principal import Principal
from lms.services import views
from lms.services.cache_keys import FilterSpec, SortSpec
from lms.services.course_service import CourseService

router = APIRouter(prefix="/v1/courses", tags=["courses"])

CourseServiceDep = Annotated[CourseService, Depends(get_course_service)]


# --- Pydantic schemas ---


class LessonIn(BaseModel):
    title: str
    video_url: str = ""
    duration_minutes: int = Field(default=1, ge=1)
    order: int = 0


class ModuleIn(BaseModel):
    title: str
    description: str = ""
    lessons: list[LessonIn] = []
    order: int = 0


class BatchIn(BaseModel):
    name: str
    start_date: int
    end_date: int | None = None


class CourseCreateIn(BaseModel):
    title: str = Field(min_length=1)
    description: str
    instructor: str
    price: float = Field(ge=0)
    category: str
    batch: BatchIn
    tags: list[str] = []
    modules: list[ModuleIn] = []
    thumbnail: str = ""
    is_published: bool = False


class CourseUpdateIn(BaseModel):
    title: str | None = None
    description: str | None = None
    instructor: str | None = None
    price: float | None = Field(default=None, ge=0)
    category: str | None = None
    batch: BatchIn | None = None
    tags: list[str] | None = None
    modules: list[ModuleIn] | None = None
    thumbnail: str | None = None
    is_published: bool | None = None


def _modules(modules: list[ModuleIn]) -> tuple[CourseModule, ...]:
    return tuple(
        CourseModule(
            title=m.title,
            description=m.description,
            order=m.order,
            lessons=tuple(
                Lesson(
                    title=lesson.title,
                    video_url=lesson.video_url,
                    duration_minutes=lesson.duration_minutes,
                    order=lesson.order,
                )
                for lesson in m.lessons
            ),
        )
        for m in modules
    )


def _batch(batch: BatchIn) -> Batch:
    return Batch(name=batch.name, start_date=batch.start_date, end_date=batch.end_date)


# --- Endpoints ---


@router.get("")
async def list_courses(
    courses: CourseServiceDep,
    principal: Annotated[Principal, Depends(require_user)],
    search: str | None = None,
    category: str | None = None,
    tags: Annotated[list[str] | None, Query()] = None,
    min_price: float | None = None,
    max_price: float | None = None,
    batch: str | None = None,
    sort: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    include_unpublished: bool = False,
) -> dict:
    filters = FilterSpec(
        search=search,
        category=category,
        tags=tuple(tags) if tags else None,
        min_price=min_price,
        max_price=max_price,
        batch=batch,
    )
    return await courses.list(
        filters,
        SortSpec.parse(sort),
        page,
        limit,
        include_unpublished=include_unpublished and principal.is_staff,
    )


@router.get("/categories", response_model=list[str])
async def list_categories(
    courses: CourseServiceDep,
    _principal: Annotated[Principal, Depends(require_user)],
) -> list[str]:
    return await courses.categories()


@router.get("/{course_id}")
async def get_course(
    course_id: UUID,
    courses: CourseServiceDep,
    _principal: Annotated[Principal, Depends(require_user)],
) -> dict:
    with service_errors():
        return await courses.get(course_id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_course(
    body: CourseCreateIn,
    courses: CourseServiceDep,
    _principal: Annotated[Principal, Depends(require_staff)],
) -> dict:
    with service_errors():
        course = await courses.create(
            title=body.title,
            description=body.description,
            instructor=body.instructor,
            price=body.price,
            category=body.category,
            batch=_batch(body.batch),
            tags=tuple(body.tags),
            modules=_modules(body.modules),
            thumbnail=body.thumbnail,
            is_published=body.is_published,
        )
    return views.course_detail(course)


@router.patch("/{course_id}")
async def update_course(
    course_id: UUID,
    body: CourseUpdateIn,
    courses: CourseServiceDep,
    _principal: Annotated[Principal, Depends(require_staff)],
) -> dict:
    changes = CourseChanges(
        title=body.title,
        description=body.description,
        instructor=body.instructor,
        price=body.price,
        category=body.category,
        tags=tuple(body.tags) if body.tags is not None else None,
        modules=_modules(body.modules) if body.modules is not None else None,
        batch=_batch(body.batch) if body.batch is not None else None,
        thumbnail=body.thumbnail,
        is_published=body.is_published,
    )
    with service_errors():
        course = await courses.update(course_id, changes)
    return views.course_detail(course)


@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course(
    course_id: UUID,
    courses: CourseServiceDep,
    _principal: Annotated[Principal, Depends(require_staff)],
) -> None:
    with service_errors():
        await courses.delete(course_id)
