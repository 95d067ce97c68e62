from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lms.api.assignments import router as assignments_router
from lms.api.courses import router as courses_router
from lms.api.enrollments import router as enrollments_router
from lms.api.health import router as health_router
from lms.api.metrics_endpoint import router as metrics_router
from lms.api.quizzes import router as quizzes_router
from lms.core.config import Settings, load_settings
from lms.core.logging import setup_logging
from lms.db.engine import build_engine, lifespan_db
from lms.db.redis import build_redis_client, lifespan_redis
from lms.middleware.metrics import MetricsMiddleware
from lms.middleware.request_context import RequestContextMiddleware, install_log_filter
from lms.repos.unit_of_work import InMemoryUnitOfWork
from lms.services.cache import build_cache_store
from lms.services.invalidation import InvalidationCoordinator

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application and its shared clients.

    The Redis client, the database engine and the cache are created
    once here and kept on ``app.state``; request dependencies read them
    from there.  Tests pass their own Settings.
    """
    settings = settings or load_settings()

    # Configure logging before anything else runs.
    setup_logging(settings.log_level, json_format=settings.log_json)
    install_log_filter()

    redis_client = build_redis_client(settings)
    engine, session_factory = build_engine(settings)
    cache = build_cache_store(settings, redis_client)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        # Nested so teardown runs in reverse order even if one side fails.
        async with lifespan_db(engine):
            async with lifespan_redis(redis_client):
                yield

    app = FastAPI(
        title="lms-core",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
    )

    app.state.settings = settings
    app.state.redis = redis_client
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.memory_uow = InMemoryUnitOfWork() if session_factory is None else None
    app.state.cache = cache
    app.state.invalidator = InvalidationCoordinator(cache)

    # Last-added runs first: RequestContext (outermost) → Metrics → route.
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(metrics_router)
    app.include_router(health_router)
    app.include_router(courses_router)
    app.include_router(enrollments_router)
    app.include_router(quizzes_router)
    app.include_router(assignments_router)

    logger.info(
        "lms-core ready  env=%s log_level=%s port=%d cache=%s store=%s",
        settings.app_env,
        settings.log_level,
        settings.port,
        "on" if cache.enabled else "off",
        "postgres" if session_factory is not None else "memory",
    )
    return app


app = create_app()
