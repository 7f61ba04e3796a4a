"""Membership registration.

Stands in for the platform's membership webhook (out of scope here):
whatever receives "membership went valid" calls POST /v1/memberships with
the join timestamp, which anchors every drip calculation afterwards.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from dripcourse.api.dependencies import get_repositories
from dripcourse.core.config import SETTINGS
from dripcourse.models.membership import MEMBERSHIP_STATUSES, Membership
from dripcourse.repos.registry import Repositories

router = APIRouter(prefix="/v1/memberships", tags=["memberships"])


class MembershipIn(BaseModel):
    company_id: UUID
    user_id: str
    joined_at: datetime | None = None
    username: str | None = None


class MembershipStatusIn(BaseModel):
    status: str


class MembershipOut(BaseModel):
    id: str
    company_id: str
    user_id: str
    joined_at: datetime
    status: str
    username: str | None


def _membership_out(m: Membership) -> MembershipOut:
    return MembershipOut(
        id=str(m.id),
        company_id=str(m.company_id),
        user_id=m.user_id,
        joined_at=m.joined_at,
        status=m.status,
        username=m.username,
    )


@router.post("", response_model=MembershipOut, status_code=status.HTTP_201_CREATED)
async def create_membership(
    body: MembershipIn,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> MembershipOut:
    if not body.user_id.strip():
        raise HTTPException(status_code=422, detail="user_id must not be empty")
    if await repos.companies.get(body.company_id) is None:
        raise HTTPException(status_code=404, detail="company not found")

    joined_at = body.joined_at or datetime.now(UTC)
    if joined_at.tzinfo is None:
        joined_at = joined_at.replace(tzinfo=SETTINGS.unlock_tz)

    membership = Membership.new(
        company_id=body.company_id,
        user_id=body.user_id.strip(),
        joined_at=joined_at,
        username=body.username,
    )
    await repos.memberships.add(membership)
    return _membership_out(membership)


@router.patch("/{membership_id}", response_model=MembershipOut)
async def update_membership_status(
    membership_id: UUID,
    body: MembershipStatusIn,
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> MembershipOut:
    if body.status not in MEMBERSHIP_STATUSES:
        raise HTTPException(status_code=422, detail="invalid status")

    updated = await repos.memberships.set_status(membership_id, body.status)
    if updated is None:
        raise HTTPException(status_code=404, detail="membership not found")
    return _membership_out(updated)
