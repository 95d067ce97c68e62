"""Repository bundles handed to the services.

Services commit explicitly, then invalidate the cache, then return:
the purge must follow the commit, otherwise a concurrent reader could
repopulate the cache from the not-yet-committed state.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from lms.repos.assignment_repo import AssignmentRepo, InMemoryAssignmentRepo
from lms.repos.course_repo import CourseRepo, InMemoryCourseRepo
from lms.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from lms.repos.pg_assignment_repo import PgAssignmentRepo
from lms.repos.pg_course_repo import PgCourseRepo
from lms.repos.pg_enrollment_repo import PgEnrollmentRepo
from lms.repos.pg_quiz_repo import PgQuizRepo
from lms.repos.pg_user_repo import PgUserRepo
from lms.repos.quiz_repo import InMemoryQuizRepo, QuizRepo
from lms.repos.user_repo import InMemoryUserRepo, UserRepo


class UnitOfWork(Protocol):
    users: UserRepo
    courses: CourseRepo
    enrollments: EnrollmentRepo
    quizzes: QuizRepo
    assignments: AssignmentRepo

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...


class InMemoryUnitOfWork:
    """Process-wide in-memory store; every write is visible immediately."""

    def __init__(self) -> None:
        self.users = InMemoryUserRepo()
        self.enrollments = InMemoryEnrollmentRepo()
        self.quizzes = InMemoryQuizRepo()
        self.assignments = InMemoryAssignmentRepo()
        # same cascade as the foreign keys on courses.id
        self.courses = InMemoryCourseRepo(
            dependents=(self.enrollments, self.assignments, self.quizzes)
        )

    async def commit(self) -> None:
        return None

    async def rollback(self) -> None:
        return None


class PgUnitOfWork:
    """Request-scoped repositories sharing one AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.users = PgUserRepo(session)
        self.courses = PgCourseRepo(session)
        self.enrollments = PgEnrollmentRepo(session)
        self.quizzes = PgQuizRepo(session)
        self.assignments = PgAssignmentRepo(session)

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
