"""Prometheus metrics inventory.

Every metric the service exports is defined here; the owning modules
import and update them at the point of action.  Scraped at /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# Daily unlock pass
# ---------------------------------------------------------------------------

UNLOCK_PASS_RUNS = Counter(
    "unlock_pass_runs_total",
    "Daily unlock passes by outcome",
    ["outcome"],  # "completed", "partial", "failed", "locked_out"
)

UNLOCK_PASS_DURATION = Histogram(
    "unlock_pass_duration_seconds",
    "Wall-clock duration of one daily unlock pass",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0],
)

UNLOCK_NOTIFICATIONS = Counter(
    "unlock_notifications_total",
    "Unlock notifications by result",
    ["result"],  # "sent", "skipped", "failed"
)

# ---------------------------------------------------------------------------
# Access gate
# ---------------------------------------------------------------------------

ACCESS_GATE_DENIALS = Counter(
    "access_gate_denials_total",
    "Completion writes refused because the module is still locked",
)

# ---------------------------------------------------------------------------
# HTTP (populated by HttpMetricsMiddleware)
# ---------------------------------------------------------------------------

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "HTTP requests by method, route template and status code",
    ["method", "route", "status_code"],
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration by method and route template",
    ["method", "route"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 10.0],
)

HTTP_IN_FLIGHT = Gauge(
    "http_requests_in_flight",
    "HTTP requests currently being handled",
)
