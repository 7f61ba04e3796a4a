from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ProgressRecord:
    """A member marked a module complete.  One row per (membership, module)."""

    membership_id: UUID
    module_id: UUID
    completed_at: datetime


@dataclass(frozen=True, slots=True)
class NotificationRecord:
    """Dedup marker: this membership was already told about this module.

    Append-only.  Once written for a pair it is never removed, so a later
    re-unlock of the same module (e.g. a corrected join date) stays silent.
    """

    membership_id: UUID
    module_id: UUID
    sent_at: datetime
