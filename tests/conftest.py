from __future__ import annotations

import asyncio
import sys
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from dripcourse.api.dependencies import get_notification_sender
from dripcourse.main import app
from dripcourse.models.course import Company, Course, CourseModule
from dripcourse.models.membership import Membership
from dripcourse.repos.registry import Repositories, in_memory_repos
from dripcourse.services.notifier import InMemoryNotificationSender
from dripcourse.services.run_lock import run_lock

# Ensure repo root is on sys.path so `import dripcourse` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

JOINED_AT = datetime(2026, 2, 1, 15, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Clear the process-wide in-memory repositories between tests."""
    in_memory_repos.companies._by_id.clear()  # type: ignore[attr-defined]
    in_memory_repos.courses._courses.clear()  # type: ignore[attr-defined]
    in_memory_repos.courses._modules.clear()  # type: ignore[attr-defined]
    in_memory_repos.memberships._by_id.clear()  # type: ignore[attr-defined]
    in_memory_repos.progress._store.clear()  # type: ignore[attr-defined]
    in_memory_repos.notifications._store.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_run_lock() -> None:
    if hasattr(run_lock, "_held"):
        run_lock._held.clear()  # type: ignore[union-attr]


@pytest.fixture
def sender() -> InMemoryNotificationSender:
    return InMemoryNotificationSender()


@pytest.fixture
def client(sender: InMemoryNotificationSender) -> Iterator[TestClient]:
    app.dependency_overrides[get_notification_sender] = lambda: sender
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def repos() -> Repositories:
    return in_memory_repos


# ---------------------------------------------------------------------------
# Seed helpers (write straight into a Repositories bundle)
# ---------------------------------------------------------------------------


def seed_company(
    repos: Repositories, *, name: str = "Acme", notifications_enabled: bool = True
) -> Company:
    company = Company.new(
        name=name,
        access_token=f"tok-{name.lower()}",
        notifications_enabled=notifications_enabled,
    )
    asyncio.run(repos.companies.add(company))
    return company


def seed_course(
    repos: Repositories,
    company: Company,
    unlock_days: list[int],
    *,
    title: str = "Onboarding",
    published: bool = True,
) -> tuple[Course, list[CourseModule]]:
    """A course with one module per unlock day, positions in list order."""
    course = Course.new(company_id=company.id, title=title)
    asyncio.run(repos.courses.add(course))
    if published:
        asyncio.run(repos.courses.update(course.id, is_published=True))
    modules = []
    for position, unlock_day in enumerate(unlock_days):
        module = CourseModule.new(
            course_id=course.id,
            title=f"Module {position + 1}",
            unlock_day=unlock_day,
            position=position,
            content=f"content {position + 1}",
            video_url=f"https://video.example/{position + 1}",
        )
        asyncio.run(repos.courses.add_module(module))
        modules.append(module)
    return course, modules


def seed_membership(
    repos: Repositories,
    company: Company,
    *,
    user_id: str = "user_1",
    joined_at: datetime = JOINED_AT,
    status: str = "active",
) -> Membership:
    membership = Membership.new(
        company_id=company.id, user_id=user_id, joined_at=joined_at, status=status
    )
    asyncio.run(repos.memberships.add(membership))
    return membership
