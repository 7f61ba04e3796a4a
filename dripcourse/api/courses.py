"""Creator endpoints: companies, courses, modules and the drip timeline.

Write-path validation of the schedule lives here: ``unlock_day`` must be a
non-negative integer and titles 1..256 characters.  The drip calculator
itself trusts its input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from dripcourse.api.dependencies import get_repositories
from dripcourse.models.course import Company, Course, CourseModule
from dripcourse.repos.course_repo import (
    InvalidModuleOrderError,
    PublishedCourseConflictError,
)
from dripcourse.repos.registry import Repositories
from dripcourse.services.drip import compute_status

router = APIRouter(prefix="/v1", tags=["courses"])

_MAX_TITLE = 256


# --- Pydantic schemas ---


class CompanyIn(BaseModel):
    name: str
    access_token: str
    notifications_enabled: bool = True


class CompanyPatchIn(BaseModel):
    notifications_enabled: bool


class CompanyOut(BaseModel):
    id: str
    name: str
    notifications_enabled: bool


class CourseIn(BaseModel):
    title: str
    description: str | None = None


class CoursePatchIn(BaseModel):
    title: str | None = None
    description: str | None = None
    is_published: bool | None = None


class CourseOut(BaseModel):
    id: str
    company_id: str
    title: str
    description: str | None
    is_published: bool


class ModuleIn(BaseModel):
    title: str
    unlock_day: int
    content: str | None = None
    video_url: str | None = None


class ModulePatchIn(BaseModel):
    title: str | None = None
    content: str | None = None
    video_url: str | None = None
    unlock_day: int | None = None
    position: int | None = None


class ModuleOut(BaseModel):
    id: str
    course_id: str
    title: str
    unlock_day: int
    position: int
    content: str | None
    video_url: str | None


class ReorderIn(BaseModel):
    order: list[UUID]


class ScheduleEntryOut(BaseModel):
    id: str
    title: str
    position: int
    unlock_day: int
    unlock_date: datetime
    is_unlocked: bool
    days_remaining: int | None


# --- Helpers ---


def _clean_title(raw: str) -> str:
    title = raw.strip()
    if not title:
        raise HTTPException(status_code=422, detail="title must not be empty")
    if len(title) > _MAX_TITLE:
        raise HTTPException(
            status_code=422, detail=f"title must be {_MAX_TITLE} characters or fewer"
        )
    return title


def _company_out(company: Company) -> CompanyOut:
    return CompanyOut(
        id=str(company.id),
        name=company.name,
        notifications_enabled=company.notifications_enabled,
    )


def _course_out(course: Course) -> CourseOut:
    return CourseOut(
        id=str(course.id),
        company_id=str(course.company_id),
        title=course.title,
        description=course.description,
        is_published=course.is_published,
    )


def _module_out(module: CourseModule) -> ModuleOut:
    return ModuleOut(
        id=str(module.id),
        course_id=str(module.course_id),
        title=module.title,
        unlock_day=module.unlock_day,
        position=module.position,
        content=module.content,
        video_url=module.video_url,
    )


async def _get_course_or_404(repos: Repositories, course_id: UUID) -> Course:
    course = await repos.courses.get(course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="course not found")
    return course


async def _get_module_or_404(
    repos: Repositories, course_id: UUID, module_id: UUID
) -> CourseModule:
    module = await repos.courses.get_module(module_id)
    if module is None or module.course_id != course_id:
        raise HTTPException(status_code=404, detail="module not found")
    return module


def _non_negative(name: str, value: int | None) -> int:
    if value is None or value < 0:
        raise HTTPException(
            status_code=422, detail=f"{name} must be a non-negative integer"
        )
    return value


# --- Companies ---


@router.post(
    "/companies", response_model=CompanyOut, status_code=status.HTTP_201_CREATED
)
async def create_company(
    body: CompanyIn,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> CompanyOut:
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=422, detail="name must not be empty")
    if not body.access_token.strip():
        raise HTTPException(status_code=422, detail="access_token must not be empty")

    company = Company.new(
        name=name,
        access_token=body.access_token.strip(),
        notifications_enabled=body.notifications_enabled,
    )
    await repos.companies.add(company)
    return _company_out(company)


@router.patch("/companies/{company_id}", response_model=CompanyOut)
async def update_company(
    company_id: UUID,
    body: CompanyPatchIn,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> CompanyOut:
    updated = await repos.companies.set_notifications_enabled(
        company_id, body.notifications_enabled
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="company not found")
    return _company_out(updated)


# --- Courses ---


@router.post(
    "/companies/{company_id}/courses",
    response_model=CourseOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_course(
    company_id: UUID,
    body: CourseIn,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> CourseOut:
    if await repos.companies.get(company_id) is None:
        raise HTTPException(status_code=404, detail="company not found")

    description = (body.description or "").strip() or None
    course = Course.new(
        company_id=company_id, title=_clean_title(body.title), description=description
    )
    await repos.courses.add(course)
    return _course_out(course)


@router.patch("/courses/{course_id}", response_model=CourseOut)
async def update_course(
    course_id: UUID,
    body: CoursePatchIn,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> CourseOut:
    """Update title, description or publication.

    A company publishes at most one course; publishing a second answers 409.
    """
    await _get_course_or_404(repos, course_id)

    fields = body.model_fields_set
    if not fields:
        raise HTTPException(status_code=422, detail="no fields to update")

    title = _clean_title(body.title) if body.title is not None else None
    description = None
    clear_description = False
    if "description" in fields:
        description = (body.description or "").strip() or None
        clear_description = description is None

    try:
        updated = await repos.courses.update(
            course_id,
            title=title,
            description=description,
            clear_description=clear_description,
            is_published=body.is_published,
        )
    except PublishedCourseConflictError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="company already has a published course",
        ) from None

    if updated is None:
        raise HTTPException(status_code=404, detail="course not found")
    return _course_out(updated)


@router.delete("/courses/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course(
    course_id: UUID,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> None:
    """Delete the course together with its modules."""
    if not await repos.courses.delete(course_id):
        raise HTTPException(status_code=404, detail="course not found")


# --- Modules ---


@router.get("/courses/{course_id}/modules", response_model=list[ModuleOut])
async def list_modules(
    course_id: UUID,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> list[ModuleOut]:
    await _get_course_or_404(repos, course_id)
    return [_module_out(m) for m in await repos.courses.list_modules(course_id)]


@router.post(
    "/courses/{course_id}/modules",
    response_model=ModuleOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_module(
    course_id: UUID,
    body: ModuleIn,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> ModuleOut:
    """Append a module after the current last position."""
    await _get_course_or_404(repos, course_id)
    unlock_day = _non_negative("unlock_day", body.unlock_day)

    module = CourseModule.new(
        course_id=course_id,
        title=_clean_title(body.title),
        unlock_day=unlock_day,
        position=await repos.courses.next_position(course_id),
        content=body.content or None,
        video_url=body.video_url or None,
    )
    await repos.courses.add_module(module)
    return _module_out(module)


@router.patch("/courses/{course_id}/modules/{module_id}", response_model=ModuleOut)
async def update_module(
    course_id: UUID,
    module_id: UUID,
    body: ModulePatchIn,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> ModuleOut:
    """Edit a module, including its drip schedule.

    Members already notified about the module are not notified again when
    a changed ``unlock_day`` makes it unlock a second time.
    """
    await _get_module_or_404(repos, course_id, module_id)

    fields = body.model_fields_set
    changes: dict[str, object] = {}
    if body.title is not None:
        changes["title"] = _clean_title(body.title)
    if "content" in fields:
        changes["content"] = body.content or None
    if "video_url" in fields:
        changes["video_url"] = body.video_url or None
    if "unlock_day" in fields:
        changes["unlock_day"] = _non_negative("unlock_day", body.unlock_day)
    if "position" in fields:
        changes["position"] = _non_negative("position", body.position)
    if not changes:
        raise HTTPException(status_code=422, detail="no fields to update")

    updated = await repos.courses.update_module(module_id, changes)
    if updated is None:
        raise HTTPException(status_code=404, detail="module not found")
    return _module_out(updated)


@router.delete(
    "/courses/{course_id}/modules/{module_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_module(
    course_id: UUID,
    module_id: UUID,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> None:
    await _get_module_or_404(repos, course_id, module_id)
    if not await repos.courses.delete_module(module_id):
        raise HTTPException(status_code=404, detail="module not found")


@router.post("/courses/{course_id}/modules/reorder", response_model=list[ModuleOut])
async def reorder_modules(
    course_id: UUID,
    body: ReorderIn,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> list[ModuleOut]:
    """Set positions 0..n-1 in the given order.  Unlock days are unchanged."""
    await _get_course_or_404(repos, course_id)
    try:
        modules = await repos.courses.reorder_modules(course_id, body.order)
    except InvalidModuleOrderError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    return [_module_out(m) for m in modules]


@router.get("/courses/{course_id}/schedule", response_model=list[ScheduleEntryOut])
async def preview_schedule(
    course_id: UUID,
    joined_at: Annotated[datetime, Query()],
    repos: Annotated[Repositories, Depends(get_repositories)],
    now: Annotated[datetime | None, Query()] = None,
) -> list[ScheduleEntryOut]:
    """Drip timeline a member joining at ``joined_at`` would see at ``now``."""
    await _get_course_or_404(repos, course_id)
    modules = await repos.courses.list_modules(course_id)
    return [
        ScheduleEntryOut(
            id=str(s.module.id),
            title=s.module.title,
            position=s.module.position,
            unlock_day=s.module.unlock_day,
            unlock_date=s.unlock_date,
            is_unlocked=s.is_unlocked,
            days_remaining=s.days_remaining,
        )
        for s in compute_status(joined_at, modules, now)
    ]
