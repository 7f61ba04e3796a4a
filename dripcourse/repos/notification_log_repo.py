from __future__ import annotations

from typing import Protocol
from uuid import UUID

from dripcourse.models.progress import NotificationRecord


class NotificationLogRepo(Protocol):
    """Append-only dedup log for unlock notifications.

    There is no update or delete operation:
    a recorded pair stays recorded.
    """

    async def exists(self, membership_id: UUID, module_id: UUID) -> bool: ...
    async def record(self, entry: NotificationRecord) -> bool: ...
    async def list_for_membership(
        self, membership_id: UUID
    ) -> list[NotificationRecord]: ...


class InMemoryNotificationLogRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[UUID, UUID], NotificationRecord] = {}

    async def exists(self, membership_id: UUID, module_id: UUID) -> bool:
        return (membership_id, module_id) in self._store

    async def record(self, entry: NotificationRecord) -> bool:
        """Ignore-on-conflict insert.  True if a new row was written."""
        key = (entry.membership_id, entry.module_id)
        if key in self._store:
            return False
        self._store[key] = entry
        return True

    async def list_for_membership(
        self, membership_id: UUID
    ) -> list[NotificationRecord]:
        return [r for r in self._store.values() if r.membership_id == membership_id]
