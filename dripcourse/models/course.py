from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Company:
    """A tenant that installed the app.

    access_token is the credential handed to the notification sender
    when messaging this company's members.
    """

    id: UUID
    name: str
    access_token: str
    notifications_enabled: bool = True

    @staticmethod
    def new(
        *, name: str, access_token: str, notifications_enabled: bool = True
    ) -> Company:
        return Company(
            id=uuid4(),
            name=name,
            access_token=access_token,
            notifications_enabled=notifications_enabled,
        )


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    company_id: UUID
    title: str
    description: str | None = None
    is_published: bool = False

    @staticmethod
    def new(
        *, company_id: UUID, title: str, description: str | None = None
    ) -> Course:
        return Course(
            id=uuid4(), company_id=company_id, title=title, description=description
        )


@dataclass(frozen=True, slots=True)
class CourseModule:
    """A module with its drip schedule.

    unlock_day: whole days after join before the module opens (0 = at join).
    position:   display order within the course, independent of unlock_day.
    """

    id: UUID
    course_id: UUID
    title: str
    unlock_day: int
    position: int
    content: str | None = None
    video_url: str | None = None

    @staticmethod
    def new(
        *,
        course_id: UUID,
        title: str,
        unlock_day: int,
        position: int,
        content: str | None = None,
        video_url: str | None = None,
    ) -> CourseModule:
        return CourseModule(
            id=uuid4(),
            course_id=course_id,
            title=title,
            unlock_day=unlock_day,
            position=position,
            content=content,
            video_url=video_url,
        )


@dataclass(frozen=True, slots=True)
class ModuleStatus:
    """Drip state of one module as of a given instant.  Never persisted."""

    module: CourseModule
    is_unlocked: bool
    unlock_date: datetime
    days_remaining: int | None  # None iff unlocked

    @property
    def id(self) -> UUID:
        return self.module.id

    @property
    def position(self) -> int:
        return self.module.position
