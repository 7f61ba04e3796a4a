"""PostgreSQL implementation of CompanyRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dripcourse.db.tables import CompanyRow
from dripcourse.models.course import Company


class PgCompanyRepo:
    """Satisfies the CompanyRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, company_id: UUID) -> Company | None:
        stmt = select(CompanyRow).where(CompanyRow.id == company_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_company(row)

    async def add(self, company: Company) -> None:
        self._session.add(
            CompanyRow(
                id=company.id,
                name=company.name,
                access_token=company.access_token,
                notifications_enabled=company.notifications_enabled,
            )
        )
        await self._session.flush()

    async def set_notifications_enabled(
        self, company_id: UUID, enabled: bool
    ) -> Company | None:
        stmt = (
            update(CompanyRow)
            .where(CompanyRow.id == company_id)
            .values(notifications_enabled=enabled)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get(company_id)


def _row_to_company(row: CompanyRow) -> Company:
    return Company(
        id=row.id,
        name=row.name,
        access_token=row.access_token,
        notifications_enabled=row.notifications_enabled,
    )
