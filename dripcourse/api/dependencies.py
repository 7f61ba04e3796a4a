from __future__ import annotations

import hmac
import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Header, HTTPException, status

from dripcourse.core.config import SETTINGS
from dripcourse.db.engine import async_session_factory, session_scope
from dripcourse.repos.registry import Repositories, in_memory_repos, pg_repositories
from dripcourse.services.notifier import NotificationSender, default_sender
from dripcourse.services.run_lock import RunLock, run_lock

logger = logging.getLogger(__name__)


async def get_repositories() -> AsyncGenerator[Repositories, None]:
    """Request-scoped repositories.

    PostgreSQL repos sharing one session (committed when the request
    succeeds) when DATABASE_URL is set; the process-wide in-memory
    singletons otherwise.
    """
    if async_session_factory is None:
        yield in_memory_repos
        return
    async with session_scope() as session:
        yield pg_repositories(session)


def get_notification_sender() -> NotificationSender:
    return default_sender()


def get_run_lock() -> RunLock:
    return run_lock


def require_cron_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Guard for scheduler-only endpoints.

    With CRON_SECRET configured the caller must send
    ``Authorization: Bearer <CRON_SECRET>``.  Without it the guard is open,
    which is only acceptable in dev and test.
    """
    secret = SETTINGS.cron_secret
    if secret is None:
        if SETTINGS.is_prod:
            logger.error("CRON_SECRET is not set; refusing cron trigger in prod")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="cron trigger not configured",
            )
        return

    expected = f"Bearer {secret}"
    if authorization is None or not hmac.compare_digest(authorization, expected):
        logger.warning("Cron trigger rejected: bad or missing bearer secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
