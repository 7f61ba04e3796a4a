from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dripcourse.api.courses import router as courses_router
from dripcourse.api.cron import router as cron_router
from dripcourse.api.health import router as health_router
from dripcourse.api.members import router as members_router
from dripcourse.api.memberships import router as memberships_router
from dripcourse.api.metrics_endpoint import router as metrics_router
from dripcourse.core.config import SETTINGS
from dripcourse.core.logging import setup_logging
from dripcourse.db.engine import lifespan_db
from dripcourse.db.redis import lifespan_redis
from dripcourse.middleware.metrics import HttpMetricsMiddleware
from dripcourse.middleware.request_context import (
    RequestContextMiddleware,
    install_request_id_filter,
)

setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_request_id_filter()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="dripcourse",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

# Last added runs first: RequestContext -> HttpMetrics -> route.
app.add_middleware(HttpMetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(courses_router)
app.include_router(memberships_router)
app.include_router(members_router)
app.include_router(cron_router)

logger.info(
    "dripcourse started  env=%s log_level=%s unlock_tz=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.unlock_timezone,
    "on" if SETTINGS.is_dev else "off",
)
