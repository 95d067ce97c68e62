"""Domain error taxonomy.

Services raise these; the HTTP layer translates them into status codes.
CacheUnavailableError never leaves lms.services.cache.
"""

from __future__ import annotations


class LmsError(Exception):
    """Base class for errors raised by the core."""


class NotFoundError(LmsError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateError(LmsError):
    """The requested transition is not legal from the entity's current state."""


class ValidationError(LmsError, ValueError):
    """Caller input the core cannot act on."""


class CacheUnavailableError(LmsError):
    """The cache backend could not serve a request."""
