from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from dripcourse.repos.registry import Repositories, new_in_memory_repositories
from dripcourse.services.access import (
    CourseModuleNotFoundError,
    MembershipInactiveError,
    MembershipNotFoundError,
    ModuleLockedError,
    NoPublishedCourseError,
    mark_module_complete,
    member_course_view,
)
from tests.conftest import seed_company, seed_course, seed_membership

DAY_THREE = datetime(2026, 2, 4, 9, 0, tzinfo=UTC)


@pytest.fixture
def fresh_repos() -> Repositories:
    return new_in_memory_repositories()


def _denials() -> float:
    return REGISTRY.get_sample_value("access_gate_denials_total") or 0.0


def _view(repos, membership_id):
    return asyncio.run(member_course_view(repos, membership_id, DAY_THREE, tz=UTC))


def _complete(repos, membership_id, module_id, **kwargs) -> bool:
    return asyncio.run(
        mark_module_complete(
            repos, membership_id, module_id, now=DAY_THREE, tz=UTC, **kwargs
        )
    )


# ---- course view ----


def test_view_hides_content_of_locked_modules(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    seed_course(fresh_repos, company, [0, 7])
    membership = seed_membership(fresh_repos, company)

    view = _view(fresh_repos, membership.id)

    opened, locked = view.modules
    assert opened.status.is_unlocked is True
    assert opened.content == "content 1"
    assert opened.video_url == "https://video.example/1"
    assert locked.status.is_unlocked is False
    assert locked.status.days_remaining == 4
    assert locked.content is None
    assert locked.video_url is None


def test_view_reports_completion(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    _, modules = seed_course(fresh_repos, company, [0, 1])
    membership = seed_membership(fresh_repos, company)
    _complete(fresh_repos, membership.id, modules[1].id)

    view = _view(fresh_repos, membership.id)

    assert [m.completed for m in view.modules] == [False, True]


def test_view_unknown_membership(fresh_repos: Repositories) -> None:
    with pytest.raises(MembershipNotFoundError):
        _view(fresh_repos, uuid4())


def test_view_inactive_membership(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    seed_course(fresh_repos, company, [0])
    membership = seed_membership(fresh_repos, company, status="expired")
    with pytest.raises(MembershipInactiveError):
        _view(fresh_repos, membership.id)


def test_view_without_published_course(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    seed_course(fresh_repos, company, [0], published=False)
    membership = seed_membership(fresh_repos, company)
    with pytest.raises(NoPublishedCourseError):
        _view(fresh_repos, membership.id)


# ---- completion gate ----


def test_complete_unlocked_module(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    _, modules = seed_course(fresh_repos, company, [0])
    membership = seed_membership(fresh_repos, company)

    assert _complete(fresh_repos, membership.id, modules[0].id) is True
    # Idempotent.
    assert _complete(fresh_repos, membership.id, modules[0].id) is False


def test_complete_locked_module_is_refused(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    _, modules = seed_course(fresh_repos, company, [7])
    membership = seed_membership(fresh_repos, company)
    before = _denials()

    with pytest.raises(ModuleLockedError) as excinfo:
        _complete(fresh_repos, membership.id, modules[0].id)

    assert excinfo.value.status.days_remaining == 4
    assert _denials() == before + 1
    completed = asyncio.run(fresh_repos.progress.completed_module_ids(membership.id))
    assert completed == set()


def test_uncomplete_is_allowed_even_when_locked(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    _, modules = seed_course(fresh_repos, company, [7])
    membership = seed_membership(fresh_repos, company)

    changed = _complete(fresh_repos, membership.id, modules[0].id, completed=False)
    assert changed is False


def test_uncomplete_removes_progress(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    _, modules = seed_course(fresh_repos, company, [0])
    membership = seed_membership(fresh_repos, company)
    _complete(fresh_repos, membership.id, modules[0].id)

    assert _complete(fresh_repos, membership.id, modules[0].id, completed=False) is True
    completed = asyncio.run(fresh_repos.progress.completed_module_ids(membership.id))
    assert completed == set()


def test_module_from_other_company_is_not_found(fresh_repos: Repositories) -> None:
    mine = seed_company(fresh_repos, name="Mine")
    theirs = seed_company(fresh_repos, name="Theirs")
    seed_course(fresh_repos, mine, [0])
    _, foreign = seed_course(fresh_repos, theirs, [0])
    membership = seed_membership(fresh_repos, mine)

    with pytest.raises(CourseModuleNotFoundError):
        _complete(fresh_repos, membership.id, foreign[0].id)


def test_complete_for_inactive_membership(fresh_repos: Repositories) -> None:
    company = seed_company(fresh_repos)
    _, modules = seed_course(fresh_repos, company, [0])
    membership = seed_membership(fresh_repos, company, status="cancelled")

    with pytest.raises(MembershipInactiveError):
        _complete(fresh_repos, membership.id, modules[0].id)
