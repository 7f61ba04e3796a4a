"""The set of repositories one unit of work runs against.

Services take a Repositories bundle instead of five separate arguments.
Two constructors exist: process-wide in-memory singletons (tests, local
dev without DATABASE_URL) and PostgreSQL repos bound to one AsyncSession.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from dripcourse.repos.company_repo import CompanyRepo, InMemoryCompanyRepo
from dripcourse.repos.course_repo import CourseRepo, InMemoryCourseRepo
from dripcourse.repos.membership_repo import InMemoryMembershipRepo, MembershipRepo
from dripcourse.repos.notification_log_repo import (
    InMemoryNotificationLogRepo,
    NotificationLogRepo,
)
from dripcourse.repos.pg_company_repo import PgCompanyRepo
from dripcourse.repos.pg_course_repo import PgCourseRepo
from dripcourse.repos.pg_membership_repo import PgMembershipRepo
from dripcourse.repos.pg_notification_log_repo import PgNotificationLogRepo
from dripcourse.repos.pg_progress_repo import PgProgressRepo
from dripcourse.repos.progress_repo import InMemoryProgressRepo, ProgressRepo


@dataclass(frozen=True, slots=True)
class Repositories:
    companies: CompanyRepo
    courses: CourseRepo
    memberships: MembershipRepo
    progress: ProgressRepo
    notifications: NotificationLogRepo
    # Scope for a group of statements whose failure must not poison the
    # surrounding transaction.  PostgreSQL bundles open a SAVEPOINT.
    savepoint: Callable[[], AbstractAsyncContextManager[object]] = nullcontext


def new_in_memory_repositories() -> Repositories:
    return Repositories(
        companies=InMemoryCompanyRepo(),
        courses=InMemoryCourseRepo(),
        memberships=InMemoryMembershipRepo(),
        progress=InMemoryProgressRepo(),
        notifications=InMemoryNotificationLogRepo(),
    )


def pg_repositories(session: AsyncSession) -> Repositories:
    return Repositories(
        companies=PgCompanyRepo(session),
        courses=PgCourseRepo(session),
        memberships=PgMembershipRepo(session),
        progress=PgProgressRepo(session),
        notifications=PgNotificationLogRepo(session),
        savepoint=session.begin_nested,
    )


# Module-level singleton used when DATABASE_URL is not configured.
in_memory_repos = new_in_memory_repositories()
