"""Member-facing endpoints: the drip-gated course view and completion writes.

Every request recomputes unlock state from the stored join date.  Locked
modules are returned without content or video, and completing one is
refused with 403.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from dripcourse.api.dependencies import get_repositories
from dripcourse.repos.registry import Repositories
from dripcourse.services.access import (
    CourseModuleNotFoundError,
    MemberModuleView,
    MembershipInactiveError,
    MembershipNotFoundError,
    ModuleLockedError,
    NoPublishedCourseError,
    mark_module_complete,
    member_course_view,
)
from dripcourse.services.drip import format_days_remaining

router = APIRouter(prefix="/v1/members", tags=["members"])


class MemberModuleOut(BaseModel):
    id: str
    title: str
    position: int
    unlock_day: int
    is_unlocked: bool
    unlock_date: datetime
    days_remaining: int | None
    countdown: str | None
    completed: bool
    content: str | None
    video_url: str | None


class MemberCourseOut(BaseModel):
    membership_id: str
    course_id: str
    title: str
    description: str | None
    modules: list[MemberModuleOut]


class ProgressIn(BaseModel):
    module_id: UUID
    completed: bool = True


class ProgressOut(BaseModel):
    ok: bool
    changed: bool


def _module_out(view: MemberModuleView) -> MemberModuleOut:
    s = view.status
    return MemberModuleOut(
        id=str(s.module.id),
        title=s.module.title,
        position=s.module.position,
        unlock_day=s.module.unlock_day,
        is_unlocked=s.is_unlocked,
        unlock_date=s.unlock_date,
        days_remaining=s.days_remaining,
        countdown=(
            format_days_remaining(s.days_remaining)
            if s.days_remaining is not None
            else None
        ),
        completed=view.completed,
        content=view.content,
        video_url=view.video_url,
    )


@router.get("/{membership_id}/course", response_model=MemberCourseOut)
async def get_member_course(
    membership_id: UUID,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> MemberCourseOut:
    try:
        view = await member_course_view(repos, membership_id)
    except MembershipNotFoundError:
        raise HTTPException(status_code=404, detail="membership not found") from None
    except MembershipInactiveError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="membership is not active"
        ) from None
    except NoPublishedCourseError:
        raise HTTPException(status_code=404, detail="no published course") from None

    return MemberCourseOut(
        membership_id=str(view.membership.id),
        course_id=str(view.course.id),
        title=view.course.title,
        description=view.course.description,
        modules=[_module_out(m) for m in view.modules],
    )


@router.post("/{membership_id}/progress", response_model=ProgressOut)
async def post_member_progress(
    membership_id: UUID,
    body: ProgressIn,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> ProgressOut:
    try:
        changed = await mark_module_complete(
            repos, membership_id, body.module_id, completed=body.completed
        )
    except MembershipNotFoundError:
        raise HTTPException(status_code=404, detail="membership not found") from None
    except MembershipInactiveError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="membership is not active"
        ) from None
    except CourseModuleNotFoundError:
        raise HTTPException(status_code=404, detail="module not found") from None
    except ModuleLockedError as exc:
        days = exc.status.days_remaining
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"module is not yet unlocked ({days} day(s) left)",
        ) from None

    return ProgressOut(ok=True, changed=changed)
