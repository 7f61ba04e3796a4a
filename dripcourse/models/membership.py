from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

MEMBERSHIP_STATUSES = ("active", "cancelled", "expired")


@dataclass(frozen=True, slots=True)
class Membership:
    """A member's access record within one company.

    joined_at is the single anchor for every drip calculation.
    user_id is the platform user that receives unlock notifications.
    """

    id: UUID
    company_id: UUID
    user_id: str
    joined_at: datetime
    status: str = "active"  # active|cancelled|expired
    username: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @staticmethod
    def new(
        *,
        company_id: UUID,
        user_id: str,
        joined_at: datetime,
        status: str = "active",
        username: str | None = None,
    ) -> Membership:
        return Membership(
            id=uuid4(),
            company_id=company_id,
            user_id=user_id,
            joined_at=joined_at,
            status=status,
            username=username,
        )
