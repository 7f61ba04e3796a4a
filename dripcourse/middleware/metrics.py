"""HTTP request metrics.

Requests are labelled by their route template (``/v1/members/{membership_id}/course``)
rather than the raw path, so per-member URLs do not each open a new series.
Unmatched paths share the ``unmatched`` label.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from dripcourse.core.metrics import HTTP_IN_FLIGHT, HTTP_REQUEST_DURATION, HTTP_REQUESTS

_SKIPPED_PATHS = frozenset({"/metrics", "/health", "/ready"})


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class HttpMetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Scrapes and probes would drown out real traffic.
        if request.url.path in _SKIPPED_PATHS:
            return await call_next(request)

        HTTP_IN_FLIGHT.inc()
        start = time.monotonic()
        status_code = "500"
        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        finally:
            HTTP_IN_FLIGHT.dec()
            route = _route_label(request)
            HTTP_REQUESTS.labels(
                method=request.method, route=route, status_code=status_code
            ).inc()
            HTTP_REQUEST_DURATION.labels(method=request.method, route=route).observe(
                time.monotonic() - start
            )
        return response
