"""
Notification channels: in-app rows, email over an HTTP API, Slack webhooks.

Each send raises NotificationDeliveryError on failure; callers decide
whether a failure matters.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.config import settings
from devsignal.exceptions import NotificationDeliveryError
from devsignal.models import Notification, Organization, User

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, db: AsyncSession, timeout: Optional[float] = None):
        self.db = db
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def list_members(self, organization_id: UUID) -> List[User]:
        result = await self.db.execute(
            select(User).where(User.organization_id == organization_id).order_by(User.created_at)
        )
        return list(result.scalars().all())

    async def notify_in_app(self, organization_id: UUID, payload: Dict[str, Any]) -> int:
        """
        Create one notification per organization member.

        Args:
            payload: type, title, body, entity_type, entity_id

        Returns:
            Number of notifications created
        """
        members = await self.list_members(organization_id)
        for member in members:
            self.db.add(Notification(
                organization_id=organization_id,
                user_id=member.id,
                type=payload.get("type", "alert"),
                title=payload["title"],
                body=payload.get("body"),
                entity_type=payload.get("entity_type"),
                entity_id=str(payload["entity_id"]) if payload.get("entity_id") else None,
            ))
        try:
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise NotificationDeliveryError(f"in-app notification failed for org {organization_id}: {e}") from e
        return len(members)

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        """Send through a Resend-compatible API. Returns False when email is not configured."""
        if not settings.EMAIL_API_KEY:
            logger.info(f"Email not configured; skipping message to {to}")
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    settings.EMAIL_API_URL,
                    headers={"Authorization": f"Bearer {settings.EMAIL_API_KEY}"},
                    json={
                        "from": settings.EMAIL_FROM,
                        "to": [to],
                        "subject": subject,
                        "html": html,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(f"email to {to} failed: {e}") from e
        return True

    async def send_slack_message(self, webhook_url: str, message: Dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(webhook_url, json=message)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(f"slack webhook failed: {e}") from e

    async def get_slack_webhook_url(self, organization_id: UUID) -> Optional[str]:
        org = await self.db.get(Organization, organization_id)
        if org is None:
            return None
        return (org.settings or {}).get("slackWebhookUrl") or None
