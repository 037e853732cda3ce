"""Notification model for user-facing messages."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, JSON, String, Text

from backend.database import Base
from backend.models.base import get_uuid_column


def get_current_utc():
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


class Notification(Base):
    """Message shown to an account after a wallet or match event."""

    __tablename__ = "notifications"

    notification_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    account_id = get_uuid_column(
        ForeignKey("accounts.account_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    notification_type = Column(String(50), nullable=False)  # e.g. 'refund', 'withdrawal_approved'
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=get_current_utc, nullable=False)

    __table_args__ = (
        Index("ix_notifications_account_created", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(notification_id={self.notification_id}, "
            f"account_id={self.account_id}, type={self.notification_type})>"
        )
