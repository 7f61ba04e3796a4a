"""PostgreSQL implementation of ProgressRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from dripcourse.db.tables import ProgressRow
from dripcourse.models.progress import ProgressRecord


class PgProgressRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def mark_complete(self, record: ProgressRecord) -> bool:
        stmt = (
            pg_insert(ProgressRow)
            .values(
                membership_id=record.membership_id,
                module_id=record.module_id,
                completed_at=record.completed_at,
            )
            .on_conflict_do_nothing(index_elements=["membership_id", "module_id"])
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def unmark(self, membership_id: UUID, module_id: UUID) -> bool:
        stmt = delete(ProgressRow).where(
            ProgressRow.membership_id == membership_id,
            ProgressRow.module_id == module_id,
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def completed_module_ids(self, membership_id: UUID) -> set[UUID]:
        stmt = select(ProgressRow.module_id).where(
            ProgressRow.membership_id == membership_id
        )
        return set((await self._session.execute(stmt)).scalars().all())
