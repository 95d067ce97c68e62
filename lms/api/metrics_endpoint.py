"""Prometheus metrics endpoint.

Scraped by Prometheus; returns the text exposition format, not JSON:

  # TYPE cache_operations_total counter
  cache_operations_total{operation="hit"} 1432.0
  cache_operations_total{operation="miss"} 17.0

Restrict access to /metrics at the ingress in production; it reveals
request rates and error patterns.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
