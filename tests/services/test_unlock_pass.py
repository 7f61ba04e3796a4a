"""Daily unlock pass: dedup, failure isolation and the run lock."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from dripcourse.models.course import Company
from dripcourse.repos.registry import Repositories, new_in_memory_repositories
from dripcourse.services.notifier import (
    InMemoryNotificationSender,
    NotificationError,
    UnlockNotification,
)
from dripcourse.services.run_lock import InMemoryRunLock
from dripcourse.services.unlock_pass import (
    PassAlreadyRunningError,
    run_daily_unlock_pass,
    run_locked_pass,
)
from tests.conftest import JOINED_AT, seed_company, seed_course, seed_membership

# Day 7 after JOINED_AT.
UNLOCK_DAY_NOON = datetime(2026, 2, 8, 12, 0, tzinfo=UTC)


class FailingSender:
    """Raises for the listed user ids, delivers for everyone else."""

    def __init__(self, failing_users: set[str] | None = None) -> None:
        self.timeout_seconds = 1.0
        self.failing_users = failing_users
        self.sent: list[UnlockNotification] = []

    async def send(self, company: Company, notification: UnlockNotification) -> None:
        if (
            self.failing_users is None
            or notification.recipient_user_id in self.failing_users
        ):
            raise NotificationError("upstream rejected")
        self.sent.append(notification)


class HangingSender:
    timeout_seconds = 0.05

    async def send(self, company: Company, notification: UnlockNotification) -> None:
        await asyncio.sleep(10)


def _run(repos: Repositories, sender, now: datetime = UNLOCK_DAY_NOON):
    return asyncio.run(run_daily_unlock_pass(now, repos=repos, sender=sender, tz=UTC))


def _dedup_count(repos: Repositories) -> int:
    return len(repos.notifications._store)  # type: ignore[attr-defined]


@pytest.fixture
def fresh_repos() -> Repositories:
    return new_in_memory_repositories()


def _two_members_one_unlock(repos: Repositories):
    company = seed_company(repos)
    _, modules = seed_course(repos, company, [0, 7, 30])
    a = seed_membership(repos, company, user_id="user_a")
    b = seed_membership(repos, company, user_id="user_b")
    return company, modules, a, b


# ---- happy path and idempotency ----


def test_pass_notifies_each_member_once(fresh_repos: Repositories) -> None:
    _, modules, _, _ = _two_members_one_unlock(fresh_repos)
    sender = InMemoryNotificationSender()

    result = _run(fresh_repos, sender)

    assert (result.processed, result.notified, result.errors) == (2, 2, [])
    recipients = sorted(n.recipient_user_id for _, n in sender.sent)
    assert recipients == ["user_a", "user_b"]
    assert {n.body for _, n in sender.sent} == {
        f'"{modules[1].title}" in Onboarding is now available.'
    }


def test_second_pass_same_day_sends_nothing(fresh_repos: Repositories) -> None:
    _two_members_one_unlock(fresh_repos)
    sender = InMemoryNotificationSender()

    _run(fresh_repos, sender)
    again = _run(fresh_repos, sender)

    assert (again.processed, again.notified, again.errors) == (2, 0, [])
    assert len(sender.sent) == 2


def test_pass_skips_modules_not_unlocking_today(fresh_repos: Repositories) -> None:
    _two_members_one_unlock(fresh_repos)
    sender = InMemoryNotificationSender()

    result = _run(fresh_repos, sender, now=datetime(2026, 2, 9, 9, 0, tzinfo=UTC))

    assert result.notified == 0
    assert sender.sent == []


def test_notification_carries_company_credential(fresh_repos: Repositories) -> None:
    company, _, _, _ = _two_members_one_unlock(fresh_repos)
    sender = InMemoryNotificationSender()
    _run(fresh_repos, sender)
    assert all(c.access_token == company.access_token for c, _ in sender.sent)


# ---- failure isolation ----


def test_failure_for_one_member_does_not_stop_others(
    fresh_repos: Repositories,
) -> None:
    _, modules, a, b = _two_members_one_unlock(fresh_repos)
    sender = FailingSender(failing_users={"user_a"})

    result = _run(fresh_repos, sender)

    assert result.processed == 2
    assert result.notified == 1
    assert [n.recipient_user_id for n in sender.sent] == ["user_b"]
    assert len(result.errors) == 1
    assert str(a.id) in result.errors[0]
    assert str(modules[1].id) in result.errors[0]
    assert asyncio.run(fresh_repos.notifications.exists(a.id, modules[1].id)) is False
    assert asyncio.run(fresh_repos.notifications.exists(b.id, modules[1].id)) is True


def test_always_failing_sender_records_nothing(fresh_repos: Repositories) -> None:
    _two_members_one_unlock(fresh_repos)

    result = _run(fresh_repos, FailingSender())

    assert result.notified == 0
    assert len(result.errors) == 2
    assert all("send failed" in e for e in result.errors)
    assert _dedup_count(fresh_repos) == 0


def test_failed_send_is_retried_by_next_pass(fresh_repos: Repositories) -> None:
    _two_members_one_unlock(fresh_repos)
    _run(fresh_repos, FailingSender())

    sender = InMemoryNotificationSender()
    result = _run(fresh_repos, sender)

    assert result.notified == 2


def test_hanging_send_times_out(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    seed_course(fresh_repos, company, [7])
    seed_membership(fresh_repos, company)

    result = _run(fresh_repos, HangingSender())

    assert result.notified == 0
    assert len(result.errors) == 1
    assert "timed out" in result.errors[0]
    assert _dedup_count(fresh_repos) == 0


def test_record_failure_is_reported(
    fresh_repos: Repositories, monkeypatch: pytest.MonkeyPatch
) -> None:
    company = seed_company(fresh_repos)
    seed_course(fresh_repos, company, [7])
    seed_membership(fresh_repos, company)

    async def broken_record(record) -> bool:
        raise RuntimeError("disk full")

    monkeypatch.setattr(fresh_repos.notifications, "record", broken_record)
    sender = InMemoryNotificationSender()
    result = _run(fresh_repos, sender)

    assert len(sender.sent) == 1
    assert result.notified == 0
    assert "dedup record failed" in result.errors[0]


def test_course_load_failure_is_per_membership(
    fresh_repos: Repositories, monkeypatch: pytest.MonkeyPatch
) -> None:
    good = seed_company(fresh_repos, name="Good")
    bad = seed_company(fresh_repos, name="Bad")
    seed_course(fresh_repos, good, [7])
    seed_course(fresh_repos, bad, [7])
    seed_membership(fresh_repos, good, user_id="good_user")
    broken = seed_membership(fresh_repos, bad, user_id="bad_user")

    original = fresh_repos.courses.published_for_company

    async def flaky(company_id):
        if company_id == bad.id:
            raise RuntimeError("connection reset")
        return await original(company_id)

    monkeypatch.setattr(fresh_repos.courses, "published_for_company", flaky)
    sender = InMemoryNotificationSender()
    result = _run(fresh_repos, sender)

    assert result.processed == 2
    assert result.notified == 1
    assert result.errors == [f"membership {broken.id}: RuntimeError: connection reset"]


def test_membership_list_failure_raises(
    fresh_repos: Repositories, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def down() -> list:
        raise ConnectionError("database unavailable")

    monkeypatch.setattr(fresh_repos.memberships, "list_active", down)
    with pytest.raises(ConnectionError):
        _run(fresh_repos, InMemoryNotificationSender())


# ---- skipped memberships ----


def test_malformed_module_is_skipped(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    _, modules = seed_course(fresh_repos, company, [7, 7])
    seed_membership(fresh_repos, company)
    courses = fresh_repos.courses._modules  # type: ignore[attr-defined]
    courses[modules[0].id] = replace(modules[0], unlock_day="7")

    sender = InMemoryNotificationSender()
    result = _run(fresh_repos, sender)

    assert result.errors == []
    assert result.notified == 1
    assert sender.sent[0][1].body.startswith(f'"{modules[1].title}"')


def test_notifications_disabled_company_is_skipped(
    fresh_repos: Repositories,
) -> None:
    company = seed_company(fresh_repos, notifications_enabled=False)
    seed_course(fresh_repos, company, [7])
    seed_membership(fresh_repos, company)

    result = _run(fresh_repos, InMemoryNotificationSender())

    assert (result.processed, result.notified, result.errors) == (1, 0, [])


def test_unpublished_course_is_skipped(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    seed_course(fresh_repos, company, [7], published=False)
    seed_membership(fresh_repos, company)

    result = _run(fresh_repos, InMemoryNotificationSender())

    assert (result.processed, result.notified, result.errors) == (1, 0, [])


def test_inactive_memberships_are_not_processed(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    seed_course(fresh_repos, company, [7])
    seed_membership(fresh_repos, company, status="cancelled")
    seed_membership(fresh_repos, company, user_id="still_here")

    sender = InMemoryNotificationSender()
    result = _run(fresh_repos, sender)

    assert result.processed == 1
    assert [n.recipient_user_id for _, n in sender.sent] == ["still_here"]


def test_unknown_company_is_skipped(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    seed_membership(fresh_repos, company)
    fresh_repos.companies._by_id.clear()  # type: ignore[attr-defined]

    result = _run(fresh_repos, InMemoryNotificationSender())

    assert (result.processed, result.notified, result.errors) == (1, 0, [])


def test_pass_with_no_members(fresh_repos: Repositories) -> None:
    result = _run(fresh_repos, InMemoryNotificationSender())
    assert (result.processed, result.notified, result.errors) == (0, 0, [])


# ---- run lock ----


def test_locked_pass_refuses_while_lock_held(fresh_repos: Repositories) -> None:
    lock = InMemoryRunLock()
    asyncio.run(lock.acquire(UNLOCK_DAY_NOON.date().isoformat(), 60))

    with pytest.raises(PassAlreadyRunningError):
        asyncio.run(
            run_locked_pass(
                UNLOCK_DAY_NOON,
                repos=fresh_repos,
                sender=InMemoryNotificationSender(),
                lock=lock,
                tz=UTC,
            )
        )


def test_locked_pass_releases_lock(fresh_repos: Repositories) -> None:
    _two_members_one_unlock(fresh_repos)
    lock = InMemoryRunLock()
    sender = InMemoryNotificationSender()

    for _ in range(2):
        asyncio.run(
            run_locked_pass(
                UNLOCK_DAY_NOON, repos=fresh_repos, sender=sender, lock=lock, tz=UTC
            )
        )

    assert lock._held == {}
    assert len(sender.sent) == 2


def test_join_time_of_day_does_not_shift_notification_day(
    fresh_repos: Repositories,
) -> None:
    company = seed_company(fresh_repos)
    seed_course(fresh_repos, company, [1])
    seed_membership(
        fresh_repos, company, joined_at=JOINED_AT.replace(hour=23, minute=59)
    )

    sender = InMemoryNotificationSender()
    result = _run(fresh_repos, sender, now=datetime(2026, 2, 2, 0, 5, tzinfo=UTC))

    assert result.notified == 1


class SlowSender:
    """Takes longer than the lock TTL, then checks whether the lock held."""

    timeout_seconds = 5.0

    def __init__(self, lock: InMemoryRunLock, lock_name: str) -> None:
        self.lock = lock
        self.lock_name = lock_name
        self.rival_token: str | None = "unset"

    async def send(self, company: Company, notification: UnlockNotification) -> None:
        await asyncio.sleep(1.3)
        self.rival_token = await self.lock.acquire(self.lock_name, 1)


def test_long_pass_keeps_its_lock(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    seed_course(fresh_repos, company, [7])
    seed_membership(fresh_repos, company)
    lock = InMemoryRunLock()
    sender = SlowSender(lock, UNLOCK_DAY_NOON.date().isoformat())

    result = asyncio.run(
        run_locked_pass(
            UNLOCK_DAY_NOON,
            repos=fresh_repos,
            sender=sender,
            lock=lock,
            tz=UTC,
            ttl_seconds=1,
        )
    )

    assert result.notified == 1
    assert sender.rival_token is None
    assert lock._held == {}


# ---- savepoints ----


class RecordingSavepoint:
    """Stands in for a SAVEPOINT scope and records what was rolled back."""

    def __init__(self) -> None:
        self.entered = 0
        self.rolled_back: list[Exception] = []

    def __call__(self) -> contextlib.AbstractAsyncContextManager[None]:
        return self._scope()

    @contextlib.asynccontextmanager
    async def _scope(self):
        self.entered += 1
        try:
            yield
        except Exception as exc:
            self.rolled_back.append(exc)
            raise


def test_failed_membership_load_is_rolled_back_alone(
    fresh_repos: Repositories, monkeypatch: pytest.MonkeyPatch
) -> None:
    good = seed_company(fresh_repos, name="Good")
    bad = seed_company(fresh_repos, name="Bad")
    seed_course(fresh_repos, good, [7])
    seed_course(fresh_repos, bad, [7])
    seed_membership(fresh_repos, bad, user_id="bad_user")
    seed_membership(fresh_repos, good, user_id="good_user")

    original = fresh_repos.courses.published_for_company

    async def flaky(company_id):
        if company_id == bad.id:
            raise RuntimeError("current transaction is aborted")
        return await original(company_id)

    monkeypatch.setattr(fresh_repos.courses, "published_for_company", flaky)
    savepoint = RecordingSavepoint()
    repos = replace(fresh_repos, savepoint=savepoint)
    sender = InMemoryNotificationSender()

    result = _run(repos, sender)

    assert [type(e) for e in savepoint.rolled_back] == [RuntimeError]
    # Two membership loads plus one dedup lookup for the good member.
    assert savepoint.entered == 3
    assert result.notified == 1
    assert [n.recipient_user_id for _, n in sender.sent] == ["good_user"]


# ---- re-unlock after a schedule change ----


def test_changed_unlock_day_does_not_renotify(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    _, (module,) = seed_course(fresh_repos, company, [7])
    membership = seed_membership(fresh_repos, company)
    sender = InMemoryNotificationSender()
    assert _run(fresh_repos, sender).notified == 1

    asyncio.run(fresh_repos.courses.update_module(module.id, {"unlock_day": 8}))
    later = _run(fresh_repos, sender, now=UNLOCK_DAY_NOON + timedelta(days=1))

    assert (later.notified, later.errors) == (0, [])
    assert len(sender.sent) == 1
    log = asyncio.run(fresh_repos.notifications.list_for_membership(membership.id))
    assert [(r.module_id, r.sent_at) for r in log] == [(module.id, UNLOCK_DAY_NOON)]


def test_corrected_join_date_does_not_renotify(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    _, (module,) = seed_course(fresh_repos, company, [7])
    membership = seed_membership(fresh_repos, company)
    sender = InMemoryNotificationSender()
    _run(fresh_repos, sender)

    store = fresh_repos.memberships._by_id  # type: ignore[attr-defined]
    store[membership.id] = replace(membership, joined_at=JOINED_AT + timedelta(days=3))
    later = _run(fresh_repos, sender, now=UNLOCK_DAY_NOON + timedelta(days=3))

    assert later.notified == 0
    assert len(sender.sent) == 1
    log = asyncio.run(fresh_repos.notifications.list_for_membership(membership.id))
    assert [r.module_id for r in log] == [module.id]
