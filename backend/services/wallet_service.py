"""Wallet operations: manual coin adjustments, history and reconciliation."""
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.base import LedgerKind, Role
from backend.models.ledger_entry import LedgerEntry
from backend.services.audit_service import AuditAction, AuditService
from backend.services.balance_service import Balance, BalanceService, Reconciliation
from backend.services.ledger_service import LedgerService, account_lock_name
from backend.services.notification_service import NotificationService, NotificationType
from backend.services.role_service import RoleService
from backend.utils.exceptions import BusinessRuleError, ValidationError
from backend.utils.lock_client import LockClient, get_lock_client

logger = logging.getLogger(__name__)


class WalletService:
    """Service combining ledger, balance and audit for wallet views and admin tools."""

    def __init__(self, db: AsyncSession, lock_client: LockClient | None = None):
        self.db = db
        self.settings = get_settings()
        self.lock_client = lock_client or get_lock_client()
        self.ledger = LedgerService(db, lock_client=self.lock_client)
        self.balances = BalanceService(db)
        self.roles = RoleService(db)
        self.audit = AuditService(db)
        self.notifications = NotificationService(db)

    async def get_balance(self, account_id: UUID) -> Balance:
        return await self.balances.balance(account_id)

    async def history(self, account_id: UUID, limit: int = 50, offset: int = 0) -> tuple[list[LedgerEntry], int]:
        limit = max(1, min(limit, 200))
        return await self.ledger.history(account_id, limit=limit, offset=max(0, offset))

    async def adjust_balance(
        self,
        admin_id: UUID,
        account_id: UUID,
        amount: int,
        reason: str,
        withdrawable: bool = False,
    ) -> LedgerEntry:
        """
        Credit or debit an account by hand. Admin only, audited.

        Manual credits are non-withdrawable unless ``withdrawable`` is set.
        Debits are guarded like any other and fail with InsufficientBalanceError.
        """
        await self.roles.require_role(admin_id, Role.ADMIN)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required for manual adjustments")

        async with self.lock_client.lock(account_lock_name(account_id), timeout=self.settings.lock_timeout_seconds):
            try:
                entry = await self.ledger.append(
                    account_id,
                    LedgerKind.ADMIN_ADJUSTMENT,
                    amount,
                    # Debits always reduce the withdrawable subtotal too
                    is_withdrawable=withdrawable or amount < 0,
                    notes=reason,
                    created_by=str(admin_id),
                    auto_commit=False,
                    skip_lock=True,
                )
                verb = "added to" if amount > 0 else "removed from"
                await self.notifications.create(
                    account_id,
                    NotificationType.BALANCE_ADJUSTED,
                    f"{abs(amount)} coins were {verb} your wallet: {reason}",
                    data={"amount": amount},
                )
                await self.audit.record(
                    admin_id,
                    AuditAction.BALANCE_ADJUSTED,
                    target_id=account_id,
                    details={"amount": amount, "reason": reason, "ledger_entry_id": entry.entry_id},
                )
                await self.db.commit()
            except BusinessRuleError:
                await self.db.rollback()
                raise

        logger.info(f"Admin {admin_id} adjusted balance of {account_id} by {amount}: {reason}")
        self.notifications.push(account_id)
        return entry

    async def reconcile(self, admin_id: UUID, account_id: UUID) -> Reconciliation:
        """Replay the ledger for an account and repair the cached totals. Admin only."""
        await self.roles.require_role(admin_id, Role.ADMIN)
        async with self.lock_client.lock(account_lock_name(account_id), timeout=self.settings.lock_timeout_seconds):
            outcome = await self.balances.reconcile(account_id, auto_commit=False)
            if outcome.drifted:
                await self.audit.record(
                    admin_id,
                    AuditAction.BALANCE_RECONCILED,
                    target_id=account_id,
                    details={"cached": list(outcome.cached), "replayed": list(outcome.replayed)},
                )
            await self.db.commit()
        return outcome
