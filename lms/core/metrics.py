"""Application metrics (Prometheus client).

Every metric the service exports is declared here; the owning modules
import and increment them at the point of action.  Label values are
kept to small fixed sets so the series count stays bounded.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)

CACHE_ERRORS = Counter(
    "cache_errors_total",
    "Cache backend failures absorbed by the fail-open store",
    ["operation"],  # get|set|delete|delete_pattern
)

CACHE_INVALIDATIONS = Counter(
    "cache_invalidations_total",
    "Invalidation passes run after a mutation, by mutated resource",
    ["resource"],
)

# ---------------------------------------------------------------------------
# Learning domain
# ---------------------------------------------------------------------------

LESSON_COMPLETIONS = Counter(
    "lesson_completions_total",
    "Lesson completion requests by outcome",
    ["result"],  # "created" or "duplicate"
)

QUIZ_SUBMISSIONS = Counter(
    "quiz_submissions_total",
    "Scored quiz submissions",
    ["passed"],  # "true" or "false"
)

ASSIGNMENT_TRANSITIONS = Counter(
    "assignment_transitions_total",
    "Assignment lifecycle transitions",
    ["transition"],  # created|submitted|reviewed|updated|deleted
)
