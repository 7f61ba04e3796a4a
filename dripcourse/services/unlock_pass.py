"""Daily unlock pass: notify members about modules that open today.

Triggered once per calendar day by an external scheduler (HTTP endpoint
``POST /v1/cron/unlock-pass`` or ``python -m dripcourse.cron``).

For every active membership:
  1. load the company, its single published course, and the modules
  2. select modules whose unlock day is exactly today
  3. per module, in position order:
       dedup record exists  -> skip
       otherwise            -> send (bounded by the sender's timeout),
                               then write the dedup record

SEND-THEN-RECORD
-----------------
The dedup record is written only after the send returned.  A crash between
the two leaves no record, so the next day's pass sends again: a possible
duplicate, never a silently lost notification.  A failed send also leaves
no record and is retried by the next pass.

FAILURE ISOLATION
------------------
Only failing to load the active-membership list aborts the pass.  Any
error for one membership (loading its course) or one pair (send, timeout,
record) is logged with the membership/module ids, appended to
``errors``, and the pass moves on.  Reads for one membership and each
dedup lookup run inside ``repos.savepoint()``, so on PostgreSQL a failed
statement is rolled back to the savepoint and the session stays usable
for the memberships after it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, tzinfo

from dripcourse.core.config import SETTINGS
from dripcourse.core.metrics import (
    UNLOCK_NOTIFICATIONS,
    UNLOCK_PASS_DURATION,
    UNLOCK_PASS_RUNS,
)
from dripcourse.models.course import Company, Course, CourseModule
from dripcourse.models.membership import Membership
from dripcourse.models.progress import NotificationRecord
from dripcourse.repos.registry import Repositories
from dripcourse.services.drip import modules_unlocking_on
from dripcourse.services.notifier import NotificationSender, build_unlock_notification
from dripcourse.services.run_lock import DEFAULT_LOCK_TTL_SECONDS, RunLock

logger = logging.getLogger(__name__)


class PassAlreadyRunningError(Exception):
    """Another unlock pass holds the run lock for this date."""


@dataclass(slots=True)
class UnlockPassResult:
    processed: int = 0
    notified: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _Unlocks:
    company: Company
    course: Course
    modules: list[CourseModule]


async def run_daily_unlock_pass(
    now: datetime,
    *,
    repos: Repositories,
    sender: NotificationSender,
    tz: tzinfo | None = None,
) -> UnlockPassResult:
    """Send at most one unlock notification per (membership, module).

    Raises only when the active-membership list cannot be loaded.
    """
    zone = tz if tz is not None else SETTINGS.unlock_tz
    if now.tzinfo is None:
        now = now.replace(tzinfo=zone)
    run_date = now.astimezone(zone).date()
    started = time.monotonic()

    try:
        memberships = await repos.memberships.list_active()
    except Exception:
        UNLOCK_PASS_RUNS.labels(outcome="failed").inc()
        logger.exception(
            "Unlock pass aborted: cannot load active memberships",
            extra={"run_date": run_date.isoformat()},
        )
        raise

    logger.info(
        "Unlock pass for %s: %d active memberships",
        run_date.isoformat(),
        len(memberships),
        extra={"run_date": run_date.isoformat()},
    )

    result = UnlockPassResult()
    for membership in memberships:
        result.processed += 1
        try:
            async with repos.savepoint():
                unlocks = await _load_unlocks(repos, membership, run_date, zone)
        except Exception as exc:
            logger.exception(
                "Skipping membership: course data could not be loaded",
                extra={"membership_id": str(membership.id)},
            )
            result.errors.append(f"membership {membership.id}: {_describe(exc)}")
            continue

        if unlocks is None:
            continue

        for module in unlocks.modules:
            await _notify_once(
                repos, sender, membership, unlocks, module, now=now, result=result
            )

    UNLOCK_PASS_DURATION.observe(time.monotonic() - started)
    UNLOCK_PASS_RUNS.labels(outcome="partial" if result.errors else "completed").inc()
    logger.info(
        "Unlock pass done: processed=%d notified=%d errors=%d",
        result.processed,
        result.notified,
        len(result.errors),
        extra={"run_date": run_date.isoformat()},
    )
    return result


async def run_locked_pass(
    now: datetime,
    *,
    repos: Repositories,
    sender: NotificationSender,
    lock: RunLock,
    tz: tzinfo | None = None,
    ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
) -> UnlockPassResult:
    """run_daily_unlock_pass under the per-date run lock."""
    zone = tz if tz is not None else SETTINGS.unlock_tz
    aware = now if now.tzinfo is not None else now.replace(tzinfo=zone)
    lock_name = aware.astimezone(zone).date().isoformat()

    token = await lock.acquire(lock_name, ttl_seconds)
    if token is None:
        UNLOCK_PASS_RUNS.labels(outcome="locked_out").inc()
        raise PassAlreadyRunningError(f"unlock pass for {lock_name} already running")
    keeper = asyncio.create_task(_keep_lock(lock, lock_name, token, ttl_seconds))
    try:
        return await run_daily_unlock_pass(now, repos=repos, sender=sender, tz=zone)
    finally:
        keeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await keeper
        await lock.release(lock_name, token)


def utc_now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


async def _keep_lock(lock: RunLock, name: str, token: str, ttl_seconds: int) -> None:
    """Extend the run lock every third of its TTL until cancelled."""
    while True:
        await asyncio.sleep(ttl_seconds / 3)
        try:
            held = await lock.extend(name, token, ttl_seconds)
        except Exception:
            logger.warning(
                "Could not extend run lock", exc_info=True, extra={"run_date": name}
            )
            continue
        if not held:
            logger.warning("Run lock lost mid-pass", extra={"run_date": name})
            return


async def _load_unlocks(
    repos: Repositories, membership: Membership, run_date: date, zone: tzinfo
) -> _Unlocks | None:
    pair_ctx = {"membership_id": str(membership.id)}

    company = await repos.companies.get(membership.company_id)
    if company is None:
        logger.warning(
            "Membership references unknown company %s; skipped",
            membership.company_id,
            extra=pair_ctx,
        )
        return None
    if not company.notifications_enabled:
        logger.debug("Company %s has notifications off", company.id, extra=pair_ctx)
        return None

    course = await repos.courses.published_for_company(company.id)
    if course is None:
        logger.debug("Company %s has no published course", company.id, extra=pair_ctx)
        return None

    modules = [
        m
        for m in await repos.courses.list_modules(course.id)
        if _has_valid_schedule(m, membership)
    ]
    selected = modules_unlocking_on(membership.joined_at, modules, run_date, tz=zone)
    if not selected:
        return None
    return _Unlocks(company=company, course=course, modules=selected)


def _has_valid_schedule(module: CourseModule, membership: Membership) -> bool:
    for name in ("unlock_day", "position"):
        value = getattr(module, name)
        if not isinstance(value, int) or isinstance(value, bool):
            logger.warning(
                "Malformed module record: %s=%r; skipped",
                name,
                value,
                extra={
                    "membership_id": str(membership.id),
                    "module_id": str(module.id),
                },
            )
            return False
    return True


async def _notify_once(
    repos: Repositories,
    sender: NotificationSender,
    membership: Membership,
    unlocks: _Unlocks,
    module: CourseModule,
    *,
    now: datetime,
    result: UnlockPassResult,
) -> None:
    pair_ctx = {"membership_id": str(membership.id), "module_id": str(module.id)}
    stage = "dedup lookup"
    try:
        async with repos.savepoint():
            already_sent = await repos.notifications.exists(membership.id, module.id)
        if already_sent:
            UNLOCK_NOTIFICATIONS.labels(result="skipped").inc()
            logger.debug("Already notified; skipped", extra=pair_ctx)
            return

        stage = "send"
        notification = build_unlock_notification(membership, module, unlocks.course)
        await asyncio.wait_for(
            sender.send(unlocks.company, notification),
            timeout=sender.timeout_seconds,
        )

        stage = "dedup record"
        await repos.notifications.record(
            NotificationRecord(
                membership_id=membership.id, module_id=module.id, sent_at=now
            )
        )
    except Exception as exc:
        reason = _describe(exc, timeout=sender.timeout_seconds)
        UNLOCK_NOTIFICATIONS.labels(result="failed").inc()
        logger.warning(
            "Unlock notification failed at %s: %s", stage, reason, extra=pair_ctx
        )
        result.errors.append(
            f"membership {membership.id} module {module.id}: {stage} failed: {reason}"
        )
        return

    result.notified += 1
    UNLOCK_NOTIFICATIONS.labels(result="sent").inc()
    logger.info(
        "Notified user=%s about %r", membership.user_id, module.title, extra=pair_ctx
    )


def _describe(exc: BaseException, *, timeout: float | None = None) -> str:
    if isinstance(exc, TimeoutError):
        return f"timed out after {timeout}s" if timeout is not None else "timed out"
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
