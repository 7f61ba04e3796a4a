"""Liveness and readiness probes.

/health always answers 200 while the process can respond; the body reports
each backing service as ``ok``, ``degraded`` or ``not_configured``.

/ready answers 503 when PostgreSQL is configured but unreachable, since no
request can be served without it.  Redis only backs the run lock and never
makes the instance unready.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from dripcourse.db.engine import check_database, engine
from dripcourse.db.redis import check_redis, redis_pool

router = APIRouter(tags=["health"])


async def _dependency_checks() -> dict[str, str]:
    checks: dict[str, str] = {}
    if engine is None:
        checks["database"] = "not_configured"
    else:
        checks["database"] = "ok" if await check_database() else "degraded"

    if redis_pool is None:
        checks["redis"] = "not_configured"
    else:
        checks["redis"] = "ok" if await check_redis() else "degraded"
    return checks


@router.get("/health")
async def health() -> dict:
    checks = await _dependency_checks()
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if engine is not None and not await check_database():
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
