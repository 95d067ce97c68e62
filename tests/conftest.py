from __future__ import annotations

import asyncio
from uuid import UUID

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lms.core.config import Settings
from lms.main import create_app
from lms.models.course import Batch, Course, CourseModule, Lesson
from lms.models.user import STUDENT, TEACHER, User
from lms.repos.unit_of_work import InMemoryUnitOfWork
from lms.services.cache import InMemoryCacheStore
from lms.services.invalidation import InvalidationCoordinator

BATCH = "2026-spring"


def make_settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "app_env": "test",
        "log_level": "warning",
        "port": 8000,
        "database_url": None,
        "redis_url": None,
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


class FakeClock:
    """Deterministic integer clock; advance it by hand."""

    def __init__(self, now: int = 1_760_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class Backend:
    """In-memory repositories, cache and invalidator wired together."""

    def __init__(self) -> None:
        self.uow = InMemoryUnitOfWork()
        self.cache = InMemoryCacheStore()
        self.invalidator = InvalidationCoordinator(self.cache)
        self.clock = FakeClock()


# ---------------------------------------------------------------------------
# Seed helpers (shared by service and API tests)
# ---------------------------------------------------------------------------


def add_user(
    uow: InMemoryUnitOfWork,
    name: str = "Ada",
    *,
    role: str = STUDENT,
    batch: str | None = BATCH,
) -> User:
    user = User.new(
        name=name,
        email=f"{name.lower().replace(' ', '.')}@example.com",
        role=role,
        batch=batch if role == STUDENT else None,
    )
    asyncio.run(uow.users.add(user))
    return user


def add_course(
    uow: InMemoryUnitOfWork,
    title: str = "Intro to Python",
    *,
    lessons: int = 4,
    batch: str = BATCH,
    price: float = 49.0,
    published: bool = True,
    created_at: int = 1_750_000_000,
) -> Course:
    """A course whose lessons are split over modules of up to three lessons."""
    modules = []
    remaining = lessons
    index = 0
    while remaining > 0:
        n = min(3, remaining)
        modules.append(
            CourseModule(
                title=f"Module {index}",
                order=index,
                lessons=tuple(Lesson(title=f"Lesson {index}.{i}", order=i) for i in range(n)),
            )
        )
        remaining -= n
        index += 1
    course = Course.new(
        title=title,
        description=f"{title} from scratch",
        instructor="Grace",
        price=price,
        category="programming",
        batch=Batch(name=batch, start_date=1_750_000_000),
        modules=tuple(modules),
        is_published=published,
        created_at=created_at,
    )
    asyncio.run(uow.courses.add(course))
    return course


def headers(user_id: UUID | str, role: str) -> dict[str, str]:
    return {"X-User-Id": str(user_id), "X-User-Role": role}


def student_headers(user: User) -> dict[str, str]:
    return headers(user.id, STUDENT)


def teacher_headers(user: User) -> dict[str, str]:
    return headers(user.id, TEACHER)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def backend() -> Backend:
    return Backend()


@pytest.fixture
def app() -> FastAPI:
    return create_app(make_settings())


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def uow(app: FastAPI) -> InMemoryUnitOfWork:
    return app.state.memory_uow


@pytest.fixture
def student(uow: InMemoryUnitOfWork) -> User:
    return add_user(uow, "Ada")


@pytest.fixture
def teacher(uow: InMemoryUnitOfWork) -> User:
    return add_user(uow, "Grace", role=TEACHER)
