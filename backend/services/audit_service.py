"""Audit trail for privileged actions."""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    ROLE_GRANTED = "role_granted"
    MATCH_CREATED = "match_created"
    MATCH_ACTIVATED = "match_activated"
    MATCH_SETTLED = "match_settled"
    MATCH_CANCELLED = "match_cancelled"
    RESULT_VERIFIED = "result_verified"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    BALANCE_ADJUSTED = "balance_adjusted"
    BALANCE_RECONCILED = "balance_reconciled"
    CONFIG_UPDATED = "config_updated"


class AuditService:
    """Writes audit rows into the caller's transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        actor_id: UUID | str,
        action: str,
        target_id: UUID | str | None = None,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        log = AuditLog(
            actor_id=str(actor_id),
            target_id=str(target_id) if target_id is not None else None,
            action=action,
            details=details,
        )
        self.db.add(log)
        await self.db.flush()
        logger.info(f"Audit: {actor_id} {action} {target_id or ''} {details or ''}".rstrip())
        return log

    async def list_logs(
        self,
        action: str | None = None,
        target_id: UUID | str | None = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        stmt = select(AuditLog)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if target_id is not None:
            stmt = stmt.where(AuditLog.target_id == str(target_id))
        result = await self.db.execute(stmt.order_by(desc(AuditLog.created_at)).limit(limit))
        return list(result.scalars().all())
