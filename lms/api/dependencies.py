"""FastAPI dependencies: identity, repositories and services.

Authentication is done upstream.  The gateway forwards the verified
identity as two headers, ``X-User-Id`` and ``X-User-Role``; a request
without them never reaches a protected route.

Repositories come from ``get_uow``: one PostgreSQL session per request
when DATABASE_URL is configured, otherwise the process-wide in-memory
store kept on ``app.state``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from lms.core.config import Settings
from lms.core.errors import InvalidStateError, NotFoundError, ValidationError
from lms.models.principal import Principal
from lms.models.user import ADMIN, MODERATOR, STUDENT, TEACHER
from lms.repos.unit_of_work import PgUnitOfWork, UnitOfWork
from lms.services.assignment_lifecycle import AssignmentLifecycle
from lms.services.cache import CacheStore
from lms.services.course_service import CourseService
from lms.services.enrollment_service import EnrollmentService
from lms.services.invalidation import InvalidationCoordinator
from lms.services.progress_tracker import ProgressTracker
from lms.services.quiz_service import QuizService

logger = logging.getLogger(__name__)

ROLES = frozenset({STUDENT, TEACHER, MODERATOR, ADMIN})


def require_user(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Principal:
    """Build the Principal from the gateway headers, or 401."""
    if not x_user_id or not x_user_role:
        logger.warning("Request without identity headers rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity",
        )
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        logger.warning("Malformed X-User-Id rejected: %r", x_user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid identity",
        ) from None
    role = x_user_role.strip().lower()
    if role not in ROLES:
        logger.warning("Unknown role rejected: %r", x_user_role)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid identity",
        )
    return Principal(user_id=user_id, role=role)


def require_any_role(roles: set[str] | frozenset[str]):
    """Dependency factory: demand one of ``roles``, else 403.

    Usage: Depends(require_any_role({"teacher", "admin"}))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s role=%s needs one of %s",
                principal.user_id,
                principal.role,
                sorted(roles),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


require_staff = require_any_role({TEACHER, MODERATOR, ADMIN})
require_student = require_any_role({STUDENT})


@contextmanager
def service_errors() -> Iterator[None]:
    """Translate domain errors raised inside the block into HTTP errors."""
    try:
        yield
    except NotFoundError as e:
        logger.warning("Not found: %s", e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None
    except InvalidStateError as e:
        logger.warning("Invalid state: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None
    except ValidationError as e:
        logger.warning("Validation failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from None


# --- wiring ---


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cache(request: Request) -> CacheStore:
    return request.app.state.cache


def get_invalidator(request: Request) -> InvalidationCoordinator:
    return request.app.state.invalidator


async def get_uow(request: Request) -> AsyncIterator[UnitOfWork]:
    session_factory = request.app.state.session_factory
    if session_factory is None:
        yield request.app.state.memory_uow
        return
    async with session_factory() as session:
        uow = PgUnitOfWork(session)
        try:
            yield uow
        except Exception:
            await uow.rollback()
            raise


UowDep = Annotated[UnitOfWork, Depends(get_uow)]
CacheDep = Annotated[CacheStore, Depends(get_cache)]
InvalidatorDep = Annotated[InvalidationCoordinator, Depends(get_invalidator)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_course_service(
    uow: UowDep, cache: CacheDep, invalidator: InvalidatorDep, settings: SettingsDep
) -> CourseService:
    return CourseService(uow, cache, invalidator, ttl_seconds=settings.cache_ttl_seconds)


def get_enrollment_service(
    uow: UowDep, cache: CacheDep, invalidator: InvalidatorDep, settings: SettingsDep
) -> EnrollmentService:
    return EnrollmentService(
        uow, cache, invalidator, ttl_seconds=settings.cache_short_ttl_seconds
    )


def get_progress_tracker(
    uow: UowDep, cache: CacheDep, invalidator: InvalidatorDep, settings: SettingsDep
) -> ProgressTracker:
    return ProgressTracker(
        uow, cache, invalidator, ttl_seconds=settings.cache_short_ttl_seconds
    )


def get_quiz_service(
    uow: UowDep, cache: CacheDep, invalidator: InvalidatorDep, settings: SettingsDep
) -> QuizService:
    return QuizService(uow, cache, invalidator, ttl_seconds=settings.cache_ttl_seconds)


def get_assignment_lifecycle(
    uow: UowDep, cache: CacheDep, invalidator: InvalidatorDep, settings: SettingsDep
) -> AssignmentLifecycle:
    return AssignmentLifecycle(
        uow, cache, invalidator, ttl_seconds=settings.cache_short_ttl_seconds
    )
