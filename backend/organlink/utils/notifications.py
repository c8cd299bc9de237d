from __future__ import annotations

import uuid
from datetime import datetime, timezone

from loguru import logger

from ..errors import NotificationError, StoreError
from ..models import Notification
from ..store.base import RecordStore

MATCHING_LINK = "/hospital/ai-matching"


class NotificationService:
    """Records in-app notifications for hospital contacts."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def notify(self, recipient: str, message: str, link: str | None = MATCHING_LINK) -> Notification:
        notification = Notification(
            id=f"NOTIF-{uuid.uuid4().hex[:12].upper()}",
            recipient=recipient,
            message=message,
            link=link,
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self.store.insert_notification(notification)
        except StoreError as exc:
            logger.error("Notification to {} failed: {}", recipient, exc)
            raise NotificationError(f"Could not notify {recipient}: {exc}") from exc
        logger.info("Notification sent to {}: {}", recipient, message)
        return notification
