from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from dripcourse.models.course import Course, CourseModule


class PublishedCourseConflictError(Exception):
    """The company already has a different published course."""


class InvalidModuleOrderError(ValueError):
    """A reorder request is not a permutation of the course's modules."""


# Columns update_module() may change.
MODULE_EDITABLE_FIELDS = frozenset(
    {"title", "content", "video_url", "unlock_day", "position"}
)


def check_module_changes(changes: dict[str, object]) -> None:
    unknown = set(changes) - MODULE_EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"not editable: {', '.join(sorted(unknown))}")


class CourseRepo(Protocol):
    async def get(self, course_id: UUID) -> Course | None: ...
    async def add(self, course: Course) -> None: ...
    async def update(
        self,
        course_id: UUID,
        *,
        title: str | None = None,
        description: str | None = None,
        clear_description: bool = False,
        is_published: bool | None = None,
    ) -> Course | None: ...
    async def delete(self, course_id: UUID) -> bool: ...
    async def published_for_company(self, company_id: UUID) -> Course | None: ...
    async def list_modules(self, course_id: UUID) -> list[CourseModule]: ...
    async def get_module(self, module_id: UUID) -> CourseModule | None: ...
    async def add_module(self, module: CourseModule) -> None: ...
    async def update_module(
        self, module_id: UUID, changes: dict[str, object]
    ) -> CourseModule | None: ...
    async def delete_module(self, module_id: UUID) -> bool: ...
    async def next_position(self, course_id: UUID) -> int: ...
    async def reorder_modules(
        self, course_id: UUID, order: list[UUID]
    ) -> list[CourseModule]: ...


def check_module_order(modules: list[CourseModule], order: list[UUID]) -> None:
    """Raise unless ``order`` names every module of the course exactly once."""
    if len(order) != len(set(order)):
        raise InvalidModuleOrderError("order contains duplicate module ids")
    if set(order) != {m.id for m in modules}:
        raise InvalidModuleOrderError(
            "order must list every module of the course exactly once"
        )


class InMemoryCourseRepo:
    """Courses and their modules.

    A company has at most one published course: publishing a second one
    raises PublishedCourseConflictError rather than leaving two live.
    """

    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._modules: dict[UUID, CourseModule] = {}

    async def get(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def add(self, course: Course) -> None:
        if course.id in self._courses:
            raise ValueError("course already exists")
        if course.is_published:
            self._check_publishable(course)
        self._courses[course.id] = course

    async def update(
        self,
        course_id: UUID,
        *,
        title: str | None = None,
        description: str | None = None,
        clear_description: bool = False,
        is_published: bool | None = None,
    ) -> Course | None:
        existing = self._courses.get(course_id)
        if existing is None:
            return None

        updated = existing
        if title is not None:
            updated = replace(updated, title=title)
        if description is not None or clear_description:
            updated = replace(updated, description=description)
        if is_published is not None:
            updated = replace(updated, is_published=is_published)
            if is_published:
                self._check_publishable(updated)

        self._courses[course_id] = updated
        return updated

    async def delete(self, course_id: UUID) -> bool:
        """Remove the course and its modules."""
        if self._courses.pop(course_id, None) is None:
            return False
        for module_id in [
            m.id for m in self._modules.values() if m.course_id == course_id
        ]:
            del self._modules[module_id]
        return True

    async def published_for_company(self, company_id: UUID) -> Course | None:
        for course in self._courses.values():
            if course.company_id == company_id and course.is_published:
                return course
        return None

    async def list_modules(self, course_id: UUID) -> list[CourseModule]:
        return sorted(
            (m for m in self._modules.values() if m.course_id == course_id),
            key=lambda m: m.position,
        )

    async def get_module(self, module_id: UUID) -> CourseModule | None:
        return self._modules.get(module_id)

    async def add_module(self, module: CourseModule) -> None:
        if module.id in self._modules:
            raise ValueError("module already exists")
        if module.course_id not in self._courses:
            raise KeyError("course not found")
        self._modules[module.id] = module

    async def update_module(
        self, module_id: UUID, changes: dict[str, object]
    ) -> CourseModule | None:
        check_module_changes(changes)
        existing = self._modules.get(module_id)
        if existing is None:
            return None
        updated = replace(existing, **changes)
        self._modules[module_id] = updated
        return updated

    async def delete_module(self, module_id: UUID) -> bool:
        return self._modules.pop(module_id, None) is not None

    async def next_position(self, course_id: UUID) -> int:
        positions = [
            m.position for m in self._modules.values() if m.course_id == course_id
        ]
        return max(positions, default=-1) + 1

    async def reorder_modules(
        self, course_id: UUID, order: list[UUID]
    ) -> list[CourseModule]:
        check_module_order(await self.list_modules(course_id), order)
        for index, module_id in enumerate(order):
            self._modules[module_id] = replace(self._modules[module_id], position=index)
        return await self.list_modules(course_id)

    def _check_publishable(self, course: Course) -> None:
        for other in self._courses.values():
            if (
                other.id != course.id
                and other.company_id == course.company_id
                and other.is_published
            ):
                raise PublishedCourseConflictError(
                    f"company {course.company_id} already publishes course {other.id}"
                )
