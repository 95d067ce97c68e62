from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Lesson:
    title: str
    video_url: str = ""
    duration_minutes: int = 1
    order: int = 0


@dataclass(frozen=True, slots=True)
class CourseModule:
    title: str
    description: str = ""
    lessons: tuple[Lesson, ...] = ()
    order: int = 0


@dataclass(frozen=True, slots=True)
class Batch:
    """The cohort a course offering runs for."""

    name: str
    start_date: int
    end_date: int | None = None


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    title: str
    description: str
    instructor: str
    price: float
    category: str
    batch: Batch
    tags: tuple[str, ...] = ()
    modules: tuple[CourseModule, ...] = ()
    thumbnail: str = ""
    is_published: bool = False
    created_at: int = 0
    updated_at: int = 0

    @property
    def total_lessons(self) -> int:
        return sum(len(m.lessons) for m in self.modules)

    @staticmethod
    def new(
        *,
        title: str,
        description: str,
        instructor: str,
        price: float,
        category: str,
        batch: Batch,
        created_at: int,
        tags: tuple[str, ...] = (),
        modules: tuple[CourseModule, ...] = (),
        thumbnail: str = "",
        is_published: bool = False,
    ) -> Course:
        return Course(
            id=uuid4(),
            title=title,
            description=description,
            instructor=instructor,
            price=price,
            category=category,
            batch=batch,
            tags=tags,
            modules=modules,
            thumbnail=thumbnail,
            is_published=is_published,
            created_at=created_at,
            updated_at=created_at,
        )


@dataclass(frozen=True, slots=True)
class CourseChanges:
    """Partial update for a course; None means "leave unchanged"."""

    title: str | None = None
    description: str | None = None
    instructor: str | None = None
    price: float | None = None
    category: str | None = None
    tags: tuple[str, ...] | None = None
    modules: tuple[CourseModule, ...] | None = None
    batch: Batch | None = None
    thumbnail: str | None = None
    is_published: bool | None = None

    def as_dict(self) -> dict[str, object]:
        values = {
            "title": self.title,
            "description": self.description,
            "instructor": self.instructor,
            "price": self.price,
            "category": self.category,
            "tags": self.tags,
            "modules": self.modules,
            "batch": self.batch,
            "thumbnail": self.thumbnail,
            "is_published": self.is_published,
        }
        return {k: v for k, v in values.items() if v is not None}
