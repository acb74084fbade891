"""Prometheus metric inventory.

Everything the service measures is declared here; the owning modules
import a metric and increment it at the point of action.
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
# Domain metrics
# ---------------------------------------------------------------------------

PROGRESS_UPSERTS = Counter(
    "progress_upserts_total",
    "Lesson progress writes by outcome",
    ["outcome"],  # "created" or "updated"
)

ENROLLMENT_CHANGES = Counter(
    "enrollment_changes_total",
    "Class enrollment changes",
    ["action"],  # "enrolled" or "unenrolled"
)

REPORTS_GENERATED = Counter(
    "reports_generated_total",
    "Report snapshots written",
    ["kind"],  # "custom" or "class"
)
