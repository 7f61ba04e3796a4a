from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from dripcourse.models.membership import Membership


class MembershipRepo(Protocol):
    async def get(self, membership_id: UUID) -> Membership | None: ...
    async def add(self, membership: Membership) -> None: ...
    async def list_active(self) -> list[Membership]: ...
    async def set_status(
        self, membership_id: UUID, status: str
    ) -> Membership | None: ...


class InMemoryMembershipRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Membership] = {}

    async def get(self, membership_id: UUID) -> Membership | None:
        return self._by_id.get(membership_id)

    async def add(self, membership: Membership) -> None:
        if membership.id in self._by_id:
            raise ValueError("membership already exists")
        self._by_id[membership.id] = membership

    async def list_active(self) -> list[Membership]:
        return [m for m in self._by_id.values() if m.is_active]

    async def set_status(
        self, membership_id: UUID, status: str
    ) -> Membership | None:
        existing = self._by_id.get(membership_id)
        if existing is None:
            return None
        updated = replace(existing, status=status)
        self._by_id[membership_id] = updated
        return updated
