"""Health and readiness endpoints.

  /health (liveness):  the process answers.  Always 200; the body says
                       whether a backing service is impaired.
  /ready  (readiness): the system of record is reachable.  503 removes
                       the instance from rotation without restarting it.

Redis is never critical: the cache is fail-open, so an unreachable
Redis shows up as "degraded" but the instance keeps serving.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

router = APIRouter(tags=["health"])

logger = logging.getLogger(__name__)


async def _check_redis(request: Request) -> str:
    client = request.app.state.redis
    if client is None:
        return "not_configured"
    try:
        await client.ping()  # type: ignore[misc]
    except (RedisError, OSError):
        logger.warning("Health check: redis unreachable")
        return "degraded"
    return "ok"


async def _check_database(request: Request) -> str:
    engine = request.app.state.engine
    if engine is None:
        return "in_memory"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.warning("Health check: database unreachable")
        return "degraded"
    return "ok"


@router.get("/health")
async def health(request: Request) -> dict:
    checks = {
        "redis": await _check_redis(request),
        "database": await _check_database(request),
    }
    cache = request.app.state.cache
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {
        "status": overall,
        "checks": checks,
        "cache": {"enabled": cache.enabled, "backend": type(cache).__name__},
    }


@router.get("/ready")
async def ready(request: Request) -> Response:
    if await _check_database(request) == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)
