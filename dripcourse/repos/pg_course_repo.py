"""PostgreSQL implementation of CourseRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dripcourse.db.tables import CourseRow, ModuleRow
from dripcourse.models.course import Course, CourseModule
from dripcourse.repos.course_repo import (
    PublishedCourseConflictError,
    check_module_changes,
    check_module_order,
)


class PgCourseRepo:
    """Satisfies the CourseRepo Protocol.

    The one-published-course rule is backed by the partial unique index
    ``uq_courses_published_per_company``; a violation surfaces as
    PublishedCourseConflictError.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, course_id: UUID) -> Course | None:
        stmt = select(CourseRow).where(CourseRow.id == course_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_course(row)

    async def add(self, course: Course) -> None:
        row = CourseRow(
            id=course.id,
            company_id=course.company_id,
            title=course.title,
            description=course.description,
            is_published=course.is_published,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            if not course.is_published:
                raise
            raise PublishedCourseConflictError(
                f"company {course.company_id} already publishes a course"
            ) from None

    async def update(
        self,
        course_id: UUID,
        *,
        title: str | None = None,
        description: str | None = None,
        clear_description: bool = False,
        is_published: bool | None = None,
    ) -> Course | None:
        existing = await self.get(course_id)
        if existing is None:
            return None

        values: dict[str, object] = {}
        if title is not None:
            values["title"] = title
        if description is not None or clear_description:
            values["description"] = description
        if is_published is not None:
            values["is_published"] = is_published

        if values:
            stmt = update(CourseRow).where(CourseRow.id == course_id).values(**values)
            try:
                async with self._session.begin_nested():
                    await self._session.execute(stmt)
            except IntegrityError:
                raise PublishedCourseConflictError(
                    f"company {existing.company_id} already publishes a course"
                ) from None
        return await self.get(course_id)

    async def delete(self, course_id: UUID) -> bool:
        """Modules, progress and dedup rows go with it (ON DELETE CASCADE)."""
        stmt = delete(CourseRow).where(CourseRow.id == course_id)
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def published_for_company(self, company_id: UUID) -> Course | None:
        stmt = (
            select(CourseRow)
            .where(CourseRow.company_id == company_id, CourseRow.is_published)
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_course(row)

    async def list_modules(self, course_id: UUID) -> list[CourseModule]:
        stmt = (
            select(ModuleRow)
            .where(ModuleRow.course_id == course_id)
            .order_by(ModuleRow.position, ModuleRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_module(r) for r in rows]

    async def get_module(self, module_id: UUID) -> CourseModule | None:
        stmt = select(ModuleRow).where(ModuleRow.id == module_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_module(row)

    async def add_module(self, module: CourseModule) -> None:
        self._session.add(
            ModuleRow(
                id=module.id,
                course_id=module.course_id,
                title=module.title,
                content=module.content,
                video_url=module.video_url,
                unlock_day=module.unlock_day,
                position=module.position,
            )
        )
        await self._session.flush()

    async def update_module(
        self, module_id: UUID, changes: dict[str, object]
    ) -> CourseModule | None:
        check_module_changes(changes)
        if changes:
            stmt = update(ModuleRow).where(ModuleRow.id == module_id).values(**changes)
            await self._session.execute(stmt)
        return await self.get_module(module_id)

    async def delete_module(self, module_id: UUID) -> bool:
        stmt = delete(ModuleRow).where(ModuleRow.id == module_id)
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def next_position(self, course_id: UUID) -> int:
        stmt = select(func.max(ModuleRow.position)).where(
            ModuleRow.course_id == course_id
        )
        current = (await self._session.execute(stmt)).scalar_one_or_none()
        return (current if current is not None else -1) + 1

    async def reorder_modules(
        self, course_id: UUID, order: list[UUID]
    ) -> list[CourseModule]:
        check_module_order(await self.list_modules(course_id), order)
        for index, module_id in enumerate(order):
            stmt = (
                update(ModuleRow)
                .where(ModuleRow.id == module_id)
                .values(position=index)
            )
            await self._session.execute(stmt)
        return await self.list_modules(course_id)


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        company_id=row.company_id,
        title=row.title,
        description=row.description,
        is_published=row.is_published,
    )


def _row_to_module(row: ModuleRow) -> CourseModule:
    return CourseModule(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        unlock_day=row.unlock_day,
        position=row.position,
        content=row.content,
        video_url=row.video_url,
    )
