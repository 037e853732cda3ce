"""Audit log of privileged actions."""
from sqlalchemy import Column, DateTime, Index, JSON, String
import uuid
from datetime import datetime, UTC
from backend.database import Base
from backend.models.base import get_uuid_column


class AuditLog(Base):
    """Who did what to whom, for role grants and admin money movement."""
    __tablename__ = "audit_logs"

    log_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    actor_id = Column(String(64), nullable=False, index=True)
    target_id = Column(String(64), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_action_created", "action", "created_at"),
    )

    def __repr__(self):
        return f"<AuditLog(actor={self.actor_id}, action={self.action}, target={self.target_id})>"
