"""POST /v1/cron/unlock-pass: scheduler trigger, secret and run lock."""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from dripcourse.api import dependencies
from dripcourse.repos.registry import Repositories
from dripcourse.services.notifier import InMemoryNotificationSender
from dripcourse.services.run_lock import run_lock
from tests.conftest import seed_company, seed_course, seed_membership

URL = "/v1/cron/unlock-pass"


def _member_unlocking_today(repos: Repositories, user_id: str = "user_1") -> None:
    company = seed_company(repos, name=user_id)
    seed_course(repos, company, [3])
    seed_membership(
        repos,
        company,
        user_id=user_id,
        joined_at=datetime.now(UTC) - timedelta(days=3),
    )


@pytest.fixture
def cron_secret(monkeypatch: pytest.MonkeyPatch) -> str:
    secret = "s3cret"
    monkeypatch.setattr(
        dependencies,
        "SETTINGS",
        dataclasses.replace(dependencies.SETTINGS, cron_secret=secret),
    )
    return secret


def test_pass_notifies_and_reports(
    client: TestClient, repos: Repositories, sender: InMemoryNotificationSender
) -> None:
    _member_unlocking_today(repos, "user_a")
    _member_unlocking_today(repos, "user_b")

    resp = client.post(URL)
    assert resp.status_code == 200
    body = resp.json()
    assert (body["processed"], body["notified"], body["errors"]) == (2, 2, [])
    assert body["run_date"] == datetime.now(UTC).date().isoformat()
    assert len(sender.sent) == 2


def test_second_trigger_same_day_is_a_no_op(
    client: TestClient, repos: Repositories, sender: InMemoryNotificationSender
) -> None:
    _member_unlocking_today(repos)
    client.post(URL)

    body = client.post(URL).json()
    assert (body["processed"], body["notified"]) == (1, 0)
    assert len(sender.sent) == 1


def test_pass_already_running_conflicts(client: TestClient) -> None:
    today = datetime.now(UTC).date().isoformat()
    asyncio.run(run_lock.acquire(today, 60))

    resp = client.post(URL)
    assert resp.status_code == 409


def test_membership_list_failure_is_500(
    client: TestClient, repos: Repositories, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def down() -> list:
        raise ConnectionError("database unavailable")

    monkeypatch.setattr(repos.memberships, "list_active", down)
    resp = client.post(URL)
    assert resp.status_code == 500


# ---- secret ----


def test_missing_secret_is_rejected(client: TestClient, cron_secret: str) -> None:
    resp = client.post(URL)
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


def test_wrong_secret_is_rejected(client: TestClient, cron_secret: str) -> None:
    resp = client.post(URL, headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_correct_secret_is_accepted(client: TestClient, cron_secret: str) -> None:
    resp = client.post(URL, headers={"Authorization": f"Bearer {cron_secret}"})
    assert resp.status_code == 200


def test_prod_without_secret_refuses(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        dependencies,
        "SETTINGS",
        dataclasses.replace(dependencies.SETTINGS, app_env="prod", cron_secret=None),
    )
    resp = client.post(URL)
    assert resp.status_code == 503
