"""Member-facing reads and the completion access gate.

Both entry points recompute drip status on every call from the stored
join date and module schedule.  Unlock state is never cached and never
taken from the caller, so a locked module's content cannot leak and a
locked module cannot be marked complete, whatever the client sends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from uuid import UUID

from dripcourse.core.metrics import ACCESS_GATE_DENIALS
from dripcourse.models.course import Course, CourseModule, ModuleStatus
from dripcourse.models.membership import Membership
from dripcourse.models.progress import ProgressRecord
from dripcourse.repos.registry import Repositories
from dripcourse.services.drip import compute_status

logger = logging.getLogger(__name__)


class MembershipNotFoundError(Exception):
    pass


class MembershipInactiveError(Exception):
    pass


class CourseModuleNotFoundError(Exception):
    pass


class NoPublishedCourseError(Exception):
    pass


class ModuleLockedError(Exception):
    """The module has not unlocked yet for this membership."""

    def __init__(self, status: ModuleStatus) -> None:
        super().__init__(f"module {status.id} unlocks on {status.unlock_date.date()}")
        self.status = status


@dataclass(frozen=True, slots=True)
class MemberModuleView:
    status: ModuleStatus
    completed: bool

    @property
    def content(self) -> str | None:
        return self.status.module.content if self.status.is_unlocked else None

    @property
    def video_url(self) -> str | None:
        return self.status.module.video_url if self.status.is_unlocked else None


@dataclass(frozen=True, slots=True)
class MemberCourseView:
    membership: Membership
    course: Course
    modules: list[MemberModuleView]


async def _active_membership(repos: Repositories, membership_id: UUID) -> Membership:
    membership = await repos.memberships.get(membership_id)
    if membership is None:
        raise MembershipNotFoundError(str(membership_id))
    if not membership.is_active:
        raise MembershipInactiveError(
            f"membership {membership_id} is {membership.status}"
        )
    return membership


async def _module_for_membership(
    repos: Repositories, membership: Membership, module_id: UUID
) -> CourseModule:
    """The module, if it belongs to the published course of the member's company."""
    module = await repos.courses.get_module(module_id)
    course = await repos.courses.published_for_company(membership.company_id)
    if module is None or course is None or module.course_id != course.id:
        raise CourseModuleNotFoundError(str(module_id))
    return module


async def member_course_view(
    repos: Repositories,
    membership_id: UUID,
    now: datetime | None = None,
    *,
    tz: tzinfo | None = None,
) -> MemberCourseView:
    membership = await _active_membership(repos, membership_id)
    course = await repos.courses.published_for_company(membership.company_id)
    if course is None:
        raise NoPublishedCourseError(str(membership.company_id))

    modules = await repos.courses.list_modules(course.id)
    completed = await repos.progress.completed_module_ids(membership.id)
    statuses = compute_status(membership.joined_at, modules, now, tz=tz)
    return MemberCourseView(
        membership=membership,
        course=course,
        modules=[
            MemberModuleView(status=s, completed=s.id in completed) for s in statuses
        ],
    )


async def mark_module_complete(
    repos: Repositories,
    membership_id: UUID,
    module_id: UUID,
    *,
    completed: bool = True,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> bool:
    """Record (or clear) completion of one module.

    Marking complete requires the module to be unlocked right now;
    clearing is always allowed.  Idempotent both ways.  Returns True when
    a row was added or removed.
    """
    membership = await _active_membership(repos, membership_id)
    module = await _module_for_membership(repos, membership, module_id)

    if not completed:
        removed = await repos.progress.unmark(membership.id, module.id)
        logger.info(
            "Completion cleared",
            extra={"membership_id": str(membership.id), "module_id": str(module.id)},
        )
        return removed

    current = now if now is not None else datetime.now(UTC)
    (status,) = compute_status(membership.joined_at, [module], current, tz=tz)
    if not status.is_unlocked:
        ACCESS_GATE_DENIALS.inc()
        logger.warning(
            "Completion refused: module locked for %d more day(s)",
            status.days_remaining,
            extra={"membership_id": str(membership.id), "module_id": str(module.id)},
        )
        raise ModuleLockedError(status)

    added = await repos.progress.mark_complete(
        ProgressRecord(
            membership_id=membership.id, module_id=module.id, completed_at=current
        )
    )
    logger.info(
        "Module completed",
        extra={"membership_id": str(membership.id), "module_id": str(module.id)},
    )
    return added
