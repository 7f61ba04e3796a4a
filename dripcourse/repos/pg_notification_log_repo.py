"""PostgreSQL implementation of NotificationLogRepo.

record() runs inside a SAVEPOINT and commits immediately, so a dedup row
survives even if a later step of the same unlock pass fails and the outer
session is rolled back.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from dripcourse.db.tables import NotificationLogRow
from dripcourse.models.progress import NotificationRecord


class PgNotificationLogRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def exists(self, membership_id: UUID, module_id: UUID) -> bool:
        stmt = (
            select(NotificationLogRow.id)
            .where(
                NotificationLogRow.membership_id == membership_id,
                NotificationLogRow.module_id == module_id,
            )
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none() is not None

    async def record(self, entry: NotificationRecord) -> bool:
        stmt = (
            pg_insert(NotificationLogRow)
            .values(
                membership_id=entry.membership_id,
                module_id=entry.module_id,
                sent_at=entry.sent_at,
            )
            .on_conflict_do_nothing(index_elements=["membership_id", "module_id"])
        )
        async with self._session.begin_nested():
            result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount == 1

    async def list_for_membership(
        self, membership_id: UUID
    ) -> list[NotificationRecord]:
        stmt = (
            select(NotificationLogRow)
            .where(NotificationLogRow.membership_id == membership_id)
            .order_by(NotificationLogRow.sent_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            NotificationRecord(
                membership_id=r.membership_id, module_id=r.module_id, sent_at=r.sent_at
            )
            for r in rows
        ]
