"""Unlock notifications: message shape and delivery.

The daily unlock pass hands one UnlockNotification per (membership, module)
to a NotificationSender.  Senders report failure by raising
NotificationError; they never retry.  A failed send leaves no dedup record,
so the next daily pass tries again.

Each sender advertises ``timeout_seconds``.  The pass bounds every send
with it, so one hanging request cannot stall the batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from dripcourse.core.config import SETTINGS
from dripcourse.models.course import Company, Course, CourseModule
from dripcourse.models.membership import Membership

logger = logging.getLogger(__name__)

UNLOCK_TITLE = "New module unlocked 🎉"


class NotificationError(Exception):
    """The notification could not be delivered."""


@dataclass(frozen=True, slots=True)
class UnlockNotification:
    recipient_user_id: str
    title: str
    body: str


def build_unlock_notification(
    membership: Membership, module: CourseModule, course: Course
) -> UnlockNotification:
    return UnlockNotification(
        recipient_user_id=membership.user_id,
        title=UNLOCK_TITLE,
        body=f'"{module.title}" in {course.title} is now available.',
    )


@runtime_checkable
class NotificationSender(Protocol):
    timeout_seconds: float

    async def send(self, company: Company, notification: UnlockNotification) -> None:
        """Deliver one notification using the company's credential."""
        ...


class InMemoryNotificationSender:
    """Collects notifications instead of delivering them.  For tests and dev."""

    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self.timeout_seconds = timeout_seconds
        self.sent: list[tuple[Company, UnlockNotification]] = []

    async def send(self, company: Company, notification: UnlockNotification) -> None:
        self.sent.append((company, notification))


class WhopNotificationSender:
    """In-app notifications through the Whop REST API.

    POST {base_url}/notifications with the company's bearer token.
    Any transport error or non-2xx response raises NotificationError.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def send(self, company: Company, notification: UnlockNotification) -> None:
        if self._client is not None:
            await self._post(self._client, company, notification)
            return
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            await self._post(client, company, notification)

    async def _post(
        self,
        client: httpx.AsyncClient,
        company: Company,
        notification: UnlockNotification,
    ) -> None:
        try:
            response = await client.post(
                f"{self._base_url}/notifications",
                json={
                    "user_id": notification.recipient_user_id,
                    "title": notification.title,
                    "body": notification.body,
                },
                headers={"Authorization": f"Bearer {company.access_token}"},
            )
        except httpx.HTTPError as exc:
            raise NotificationError(
                f"notification request failed: {type(exc).__name__}: {exc}"
            ) from exc

        if response.is_error:
            raise NotificationError(
                f"notification rejected ({response.status_code}): "
                f"{response.text[:200]}"
            )
        logger.debug(
            "Notification delivered to user=%s company=%s",
            notification.recipient_user_id,
            company.id,
        )


def default_sender() -> NotificationSender:
    return WhopNotificationSender(
        SETTINGS.whop_api_base, timeout_seconds=SETTINGS.notify_timeout_seconds
    )
