"""Run the daily unlock pass once from the command line.

RUN:  python -m dripcourse.cron [--date YYYY-MM-DD]

Same image, different command: the API serves ``POST /v1/cron/unlock-pass``
for HTTP schedulers, this entry point suits a plain crontab or a
Kubernetes CronJob.  ``--date`` replays the pass for an earlier day;
notifications already recorded for that day are skipped.

Exit status: 0 when every notification went out, 1 when the pass finished
with per-member errors, 2 when it could not run (lock held, membership
list unavailable).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import date, datetime, time

from dripcourse.core.config import SETTINGS
from dripcourse.core.logging import setup_logging
from dripcourse.db.engine import async_session_factory, session_scope
from dripcourse.repos.registry import in_memory_repos, pg_repositories
from dripcourse.services.notifier import default_sender
from dripcourse.services.run_lock import run_lock
from dripcourse.services.unlock_pass import (
    PassAlreadyRunningError,
    UnlockPassResult,
    run_locked_pass,
    utc_now,
)

logger = logging.getLogger("dripcourse.cron")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m dripcourse.cron",
        description="Send today's module-unlock notifications.",
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="calendar day to run for, in the unlock timezone (default: today)",
    )
    return parser.parse_args(argv)


def _pass_time(run_date: date | None) -> datetime:
    if run_date is None:
        return utc_now()
    return datetime.combine(run_date, time.min, tzinfo=SETTINGS.unlock_tz)


async def _run(now: datetime) -> UnlockPassResult:
    sender = default_sender()
    if async_session_factory is None:
        logger.warning("DATABASE_URL not set; running against empty in-memory data")
        return await run_locked_pass(
            now, repos=in_memory_repos, sender=sender, lock=run_lock
        )
    async with session_scope() as session:
        return await run_locked_pass(
            now, repos=pg_repositories(session), sender=sender, lock=run_lock
        )


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

    try:
        result = asyncio.run(_run(_pass_time(args.date)))
    except PassAlreadyRunningError as exc:
        logger.error("%s", exc)
        return 2
    except Exception:
        logger.exception("Unlock pass failed")
        return 2

    for error in result.errors:
        logger.error("unlock pass error: %s", error)
    return 1 if result.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
