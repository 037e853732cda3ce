"""
Service for user-facing notifications.

Handles:
- Storing notifications for wallet and match events
- Listing and marking notifications read
- Pushing a realtime hint once the notification is committed
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.notification import Notification
from backend.services.realtime_service import RealtimeService, get_realtime_service
from backend.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class NotificationType:
    """Notification type identifiers."""
    MATCH_JOINED = "match_joined"
    MATCH_ACTIVATED = "match_activated"
    MATCH_REFUND = "match_refund"
    PRIZE_AWARDED = "prize_awarded"
    RESULT_VERIFIED = "result_verified"
    RESULT_REJECTED = "result_rejected"
    WITHDRAWAL_APPROVED = "withdrawal_approved"
    WITHDRAWAL_REJECTED = "withdrawal_rejected"
    TOPUP_APPROVED = "topup_approved"
    TOPUP_REJECTED = "topup_rejected"
    BALANCE_ADJUSTED = "balance_adjusted"
    ROLE_CHANGED = "role_changed"
    REFERRAL_BONUS = "referral_bonus"


class NotificationService:
    """Service for storing and reading notifications."""

    def __init__(self, db: AsyncSession, realtime: Optional[RealtimeService] = None):
        self.db = db
        self.realtime = realtime or get_realtime_service()

    async def create(
        self,
        account_id: UUID,
        notification_type: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Notification:
        """Add a notification to the session. The caller commits."""
        notification = Notification(
            account_id=account_id,
            notification_type=notification_type,
            message=message,
            data=data,
        )
        self.db.add(notification)
        await self.db.flush()  # Ensure it's persisted before returning
        logger.debug(f"Queued {notification_type} notification for account {account_id}")
        return notification

    def push(self, account_id: UUID) -> None:
        """Publish a realtime hint that the account's wallet changed."""
        self.realtime.publish_account(account_id, "wallet_changed")

    async def list_for_account(
        self,
        account_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        stmt = select(Notification).where(Notification.account_id == account_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        result = await self.db.execute(stmt.order_by(desc(Notification.created_at)).limit(limit))
        return list(result.scalars().all())

    async def mark_read(self, account_id: UUID, notification_id: UUID) -> Notification:
        """Mark one of the account's notifications as read."""
        notification = await self.db.get(Notification, notification_id)
        # Someone else's notification looks the same as a missing one
        if not notification or notification.account_id != account_id:
            raise NotFoundError("Notification not found")
        notification.is_read = True
        await self.db.commit()
        return notification

    async def mark_all_read(self, account_id: UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.account_id == account_id, Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0
