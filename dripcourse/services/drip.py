"""Drip scheduling: which modules a member can open, and when.

Pure functions only.  No repository access, no clock reads beyond the
``now`` default, no shared state, so every function here is safe to call
from any number of concurrent requests.

THE DAY BOUNDARY
-----------------
A module with ``unlock_day = N`` opens at midnight, in the unlock timezone,
of the calendar day N days after the member's join date.  The time of day
at which the member joined is discarded:

    joined_at   = 2026-02-01T15:00:00Z,  unlock_day = 7
    unlock_date = 2026-02-08T00:00:00 (UNLOCK_TIMEZONE, default UTC)

The unlock timezone is one configuration value for the whole service
(``UNLOCK_TIMEZONE``); there is no per-member timezone.  Naive datetimes
passed in are read as wall-clock times in that timezone.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, tzinfo

from dripcourse.core.config import SETTINGS
from dripcourse.models.course import CourseModule, ModuleStatus

_ONE_DAY = timedelta(days=1)


def _resolve_tz(tz: tzinfo | None) -> tzinfo:
    return tz if tz is not None else SETTINGS.unlock_tz


def _as_aware(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


def _calendar_date(value: date | datetime, tz: tzinfo) -> date:
    # datetime is a subclass of date, so test for it first.
    if isinstance(value, datetime):
        return _as_aware(value, tz).astimezone(tz).date()
    return value


def _shift_days(day: date, days: int) -> date:
    """Add whole days, clamping to the calendar's ends instead of raising."""
    try:
        return day + timedelta(days=days)
    except OverflowError:
        return date.max if days > 0 else date.min


def _midnight(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def unlock_date_for(
    joined_at: datetime, unlock_day: int, *, tz: tzinfo | None = None
) -> datetime:
    """Midnight (unlock tz) of ``date(joined_at) + unlock_day`` days."""
    zone = _resolve_tz(tz)
    join_day = _calendar_date(joined_at, zone)
    return _midnight(_shift_days(join_day, unlock_day), zone)


def compute_status(
    joined_at: datetime,
    modules: Iterable[CourseModule],
    now: datetime | None = None,
    *,
    tz: tzinfo | None = None,
) -> list[ModuleStatus]:
    """Lock/unlock state of every module as of ``now``.

    Results are ordered by ``position`` ascending; ``unlock_day`` never
    affects the order.  A module is unlocked iff ``now >= unlock_date``,
    so the instant midnight passes counts as unlocked.  ``days_remaining``
    is the ceiling of the remaining time in days, giving 1 for "tomorrow"
    even late in the evening, and is ``None`` once unlocked.

    Example::

        joined_at = 2026-02-01T15:00Z, unlock_day = 7
        now = 2026-02-07T23:00Z  ->  locked, days_remaining = 1
        now = 2026-02-08T00:00Z  ->  unlocked
    """
    zone = _resolve_tz(tz)
    current = _as_aware(now, zone) if now is not None else datetime.now(zone)

    statuses: list[ModuleStatus] = []
    for module in sorted(modules, key=lambda m: m.position):
        unlock_date = unlock_date_for(joined_at, module.unlock_day, tz=zone)
        is_unlocked = current >= unlock_date
        days_remaining = (
            None if is_unlocked else -((current - unlock_date) // _ONE_DAY)
        )
        statuses.append(
            ModuleStatus(
                module=module,
                is_unlocked=is_unlocked,
                unlock_date=unlock_date,
                days_remaining=days_remaining,
            )
        )
    return statuses


def modules_unlocking_on(
    joined_at: datetime,
    modules: Iterable[CourseModule],
    target_date: date | datetime,
    *,
    tz: tzinfo | None = None,
) -> list[CourseModule]:
    """Modules whose unlock day is exactly the calendar day of ``target_date``.

    Compares calendar dates, not instants: a module that unlocked
    yesterday is not selected today.  Ordered by ``position``.
    """
    zone = _resolve_tz(tz)
    target = _calendar_date(target_date, zone)
    join_day = _calendar_date(joined_at, zone)
    return [
        module
        for module in sorted(modules, key=lambda m: m.position)
        if _shift_days(join_day, module.unlock_day) == target
    ]


def format_days_remaining(days: int) -> str:
    """Countdown label for a locked module."""
    if days <= 0:
        return "Unlocking soon"
    if days == 1:
        return "Unlocks tomorrow"
    return f"Unlocks in {days} days"
