"""Invalidation fan-out after a committed mutation.

A service calls ``invalidate(resource, entity_id)`` after its system of
record write and before it returns.  The coordinator purges:

  * the resource's listing and aggregate keys, and the single-entity
    key for ``entity_id`` when one is given;
  * every key (listing, aggregate and entity) of each resource whose
    cached views embed the mutated one or are scoped by it.

Purging more than needed costs a cache miss.  Purging less serves stale
data, so the fan-out table errs wide.
"""

from __future__ import annotations

import logging
from uuid import UUID

from lms.core.metrics import CACHE_INVALIDATIONS
from lms.services import cache_keys
from lms.services.cache import CacheStore

logger = logging.getLogger(__name__)

# mutated resource -> resources whose cached views also go stale
FAN_OUT: dict[str, tuple[str, ...]] = {
    # course refs are embedded in enrollment and assignment views; a delete
    # cascades to enrollments, completions and assignments and detaches
    # quizzes and quiz results
    cache_keys.COURSES: (
        cache_keys.ENROLLMENTS,
        cache_keys.PROGRESS,
        cache_keys.ASSIGNMENTS,
        cache_keys.QUIZZES,
        cache_keys.QUIZ_RESULTS,
    ),
    # a student's assignment listing is scoped by their enrolled courses
    cache_keys.ENROLLMENTS: (cache_keys.PROGRESS, cache_keys.ASSIGNMENTS),
    cache_keys.PROGRESS: (cache_keys.ENROLLMENTS,),
    cache_keys.QUIZZES: (),
    cache_keys.QUIZ_RESULTS: (),
    cache_keys.ASSIGNMENTS: (),
}


class InvalidationCoordinator:
    def __init__(self, cache: CacheStore) -> None:
        self._cache = cache

    def patterns_for(self, resource: str) -> list[str]:
        """Glob patterns purged when ``resource`` changes."""
        if resource not in FAN_OUT:
            raise ValueError(f"unknown cache resource {resource!r}")
        patterns = [
            cache_keys.list_pattern(resource),
            cache_keys.aggregate_pattern(resource),
        ]
        for r in FAN_OUT[resource]:
            patterns.append(cache_keys.list_pattern(r))
            patterns.append(cache_keys.aggregate_pattern(r))
            patterns.append(cache_keys.entity_pattern(r))
        return patterns

    async def invalidate(
        self, resource: str, entity_id: UUID | str | None = None
    ) -> None:
        patterns = self.patterns_for(resource)
        CACHE_INVALIDATIONS.labels(resource=resource).inc()
        if not self._cache.enabled:
            return

        for pattern in patterns:
            await self._cache.delete_pattern(pattern)
        if entity_id is not None:
            await self._cache.delete(cache_keys.entity_key(resource, entity_id))

        logger.debug(
            "Invalidated %s entity=%s patterns=%s",
            resource,
            entity_id,
            patterns,
            extra={"resource": resource, "entity_id": str(entity_id or "")},
        )
