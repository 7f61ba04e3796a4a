from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from dripcourse.models.course import Company


class CompanyRepo(Protocol):
    async def get(self, company_id: UUID) -> Company | None: ...
    async def add(self, company: Company) -> None: ...
    async def set_notifications_enabled(
        self, company_id: UUID, enabled: bool
    ) -> Company | None: ...


class InMemoryCompanyRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Company] = {}

    async def get(self, company_id: UUID) -> Company | None:
        return self._by_id.get(company_id)

    async def add(self, company: Company) -> None:
        if company.id in self._by_id:
            raise ValueError("company already exists")
        self._by_id[company.id] = company

    async def set_notifications_enabled(
        self, company_id: UUID, enabled: bool
    ) -> Company | None:
        existing = self._by_id.get(company_id)
        if existing is None:
            return None
        updated = replace(existing, notifications_enabled=enabled)
        self._by_id[company_id] = updated
        return updated
