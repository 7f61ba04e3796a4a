from __future__ import annotations

from typing import Protocol
from uuid import UUID

from dripcourse.models.progress import ProgressRecord


class ProgressRepo(Protocol):
    async def mark_complete(self, record: ProgressRecord) -> bool: ...
    async def unmark(self, membership_id: UUID, module_id: UUID) -> bool: ...
    async def completed_module_ids(self, membership_id: UUID) -> set[UUID]: ...


class InMemoryProgressRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[UUID, UUID], ProgressRecord] = {}

    async def mark_complete(self, record: ProgressRecord) -> bool:
        """Insert unless the pair is already complete.  True if inserted."""
        key = (record.membership_id, record.module_id)
        if key in self._store:
            return False
        self._store[key] = record
        return True

    async def unmark(self, membership_id: UUID, module_id: UUID) -> bool:
        return self._store.pop((membership_id, module_id), None) is not None

    async def completed_module_ids(self, membership_id: UUID) -> set[UUID]:
        return {mod for (mem, mod) in self._store if mem == membership_id}
