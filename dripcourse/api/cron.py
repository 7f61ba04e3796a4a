"""Scheduler trigger for the daily unlock pass.

An external scheduler calls this once per calendar day::

    curl -X POST -H "Authorization: Bearer $CRON_SECRET" \\
        http://localhost:8000/v1/cron/unlock-pass

Partial failures still answer 200 with the errors listed in the body;
only an infrastructure failure (membership list unavailable) answers 500.
A pass already running for the same date answers 409.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from dripcourse.api.dependencies import (
    get_notification_sender,
    get_repositories,
    get_run_lock,
    require_cron_secret,
)
from dripcourse.core.config import SETTINGS
from dripcourse.repos.registry import Repositories
from dripcourse.services.notifier import NotificationSender
from dripcourse.services.run_lock import RunLock
from dripcourse.services.unlock_pass import (
    PassAlreadyRunningError,
    run_locked_pass,
    utc_now,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


class UnlockPassOut(BaseModel):
    run_date: str
    processed: int
    notified: int
    errors: list[str]


@router.post("/unlock-pass", response_model=UnlockPassOut)
async def trigger_unlock_pass(
    repos: Annotated[Repositories, Depends(get_repositories)],
    sender: Annotated[NotificationSender, Depends(get_notification_sender)],
    lock: Annotated[RunLock, Depends(get_run_lock)],
) -> UnlockPassOut:
    now = utc_now()
    try:
        result = await run_locked_pass(now, repos=repos, sender=sender, lock=lock)
    except PassAlreadyRunningError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=str(exc)
        ) from None
    except Exception:
        logger.exception("Unlock pass failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="unlock pass failed",
        ) from None

    return UnlockPassOut(
        run_date=now.astimezone(SETTINGS.unlock_tz).date().isoformat(),
        processed=result.processed,
        notified=result.notified,
        errors=result.errors,
    )
