"""PostgreSQL implementation of MembershipRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dripcourse.db.tables import MembershipRow
from dripcourse.models.membership import Membership


class PgMembershipRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, membership_id: UUID) -> Membership | None:
        stmt = select(MembershipRow).where(MembershipRow.id == membership_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_membership(row)

    async def add(self, membership: Membership) -> None:
        self._session.add(
            MembershipRow(
                id=membership.id,
                company_id=membership.company_id,
                user_id=membership.user_id,
                joined_at=membership.joined_at,
                status=membership.status,
                username=membership.username,
            )
        )
        await self._session.flush()

    async def list_active(self) -> list[Membership]:
        stmt = (
            select(MembershipRow)
            .where(MembershipRow.status == "active")
            .order_by(MembershipRow.joined_at, MembershipRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]

    async def set_status(
        self, membership_id: UUID, status: str
    ) -> Membership | None:
        stmt = (
            update(MembershipRow)
            .where(MembershipRow.id == membership_id)
            .values(status=status)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get(membership_id)


def _row_to_membership(row: MembershipRow) -> Membership:
    return Membership(
        id=row.id,
        company_id=row.company_id,
        user_id=row.user_id,
        joined_at=row.joined_at,
        status=row.status,
        username=row.username,
    )
