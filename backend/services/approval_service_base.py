"""Base approval workflow for requests that move money in or out."""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, UTC
from typing import Any, Type
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.base import LedgerKind, LedgerStatus, RequestStatus, Role
from backend.models.request_base import RequestBase
from backend.services.audit_service import AuditAction, AuditService
from backend.services.balance_service import BalanceService
from backend.services.ledger_service import LedgerService, account_lock_name
from backend.services.notification_service import NotificationService
from backend.services.realtime_service import RealtimeService, get_realtime_service
from backend.services.role_service import RoleService
from backend.services.system_config_service import SystemConfigService
from backend.utils.exceptions import (
    BusinessRuleError,
    DuplicatePendingError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from backend.utils.lock_client import LockClient, get_lock_client

logger = logging.getLogger(__name__)


class ApprovalServiceBase(ABC):
    """Pending -> approved | rejected workflow backed by a pending ledger entry.

    Subclasses decide the request model, the ledger kind and sign, and any
    extra checks or fields; approval and rejection are shared.
    """

    def __init__(
        self,
        db: AsyncSession,
        lock_client: LockClient | None = None,
        realtime: RealtimeService | None = None,
    ):
        self.db = db
        self.settings = get_settings()
        self.lock_client = lock_client or get_lock_client()
        self.ledger = LedgerService(db, lock_client=self.lock_client)
        self.balances = BalanceService(db)
        self.roles = RoleService(db)
        self.audit = AuditService(db)
        self.config = SystemConfigService(db)
        self.notifications = NotificationService(db, realtime=realtime or get_realtime_service())

    @property
    @abstractmethod
    def request_model(self) -> Type[RequestBase]:
        """Return the request model class for this workflow."""
        pass

    @property
    @abstractmethod
    def ledger_kind(self) -> LedgerKind:
        pass

    @property
    @abstractmethod
    def label(self) -> str:
        """Human readable request name, e.g. 'withdrawal'."""
        pass

    @abstractmethod
    def signed_amount(self, amount: int) -> int:
        """Ledger amount for a request of ``amount`` coins."""
        pass

    @abstractmethod
    async def validate_request(self, account_id: UUID, amount: int, details: dict[str, Any]) -> None:
        """Input checks that do not need the account lock."""
        pass

    async def check_before_create(self, account_id: UUID, amount: int, details: dict[str, Any]) -> None:
        """Balance-dependent checks, run under the account lock after the duplicate check."""

    async def build_fields(self, account_id: UUID, amount: int, details: dict[str, Any]) -> dict[str, Any]:
        """Model-specific columns for the new request."""
        return {}

    @abstractmethod
    def approved_message(self, request: RequestBase) -> tuple[str, str]:
        """(notification_type, message) sent on approval."""
        pass

    @abstractmethod
    def rejected_message(self, request: RequestBase) -> tuple[str, str]:
        """(notification_type, message) sent on rejection."""
        pass

    async def after_approval(self, request: RequestBase) -> None:
        """Follow-up run once an approval has committed. No-op by default."""
        pass

    # ------------------------------------------------------------------

    async def request(self, account_id: UUID, amount: int, **details: Any) -> RequestBase:
        """
        Create a pending request and its pending ledger entry atomically.

        Raises:
            ValidationError: Malformed amount or details
            DuplicatePendingError: The account already has an unresolved request
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("Amount must be a positive whole number of coins")
        await self.validate_request(account_id, amount, details)

        async with self.lock_client.lock(account_lock_name(account_id), timeout=self.settings.lock_timeout_seconds):
            if await self.get_pending_for_account(account_id):
                raise DuplicatePendingError(f"You already have a pending {self.label} request")
            await self.check_before_create(account_id, amount, details)
            fields = await self.build_fields(account_id, amount, details)

            request_id = uuid.uuid4()
            try:
                ledger_entry = await self.ledger.append(
                    account_id,
                    self.ledger_kind,
                    self.signed_amount(amount),
                    status=LedgerStatus.PENDING,
                    related_request_id=request_id,
                    notes=f"{self.label.capitalize()} request",
                    auto_commit=False,
                    skip_lock=True,  # Lock already acquired above
                )
                request = self.request_model(
                    request_id=request_id,
                    account_id=account_id,
                    amount=amount,
                    status=RequestStatus.PENDING.value,
                    ledger_entry_id=ledger_entry.entry_id,
                    **fields,
                )
                self.db.add(request)
                await self.db.commit()
            except IntegrityError as e:
                # Partial unique index on pending requests
                await self.db.rollback()
                logger.warning(f"Duplicate pending {self.label} for {account_id}: {e.orig}")
                raise DuplicatePendingError(f"You already have a pending {self.label} request")
            except BusinessRuleError:
                await self.db.rollback()
                raise

        await self.db.refresh(request)
        logger.info(f"{self.label.capitalize()} request {request_id} created: account={account_id}, amount={amount}")
        self.notifications.push(account_id)
        return request

    async def approve(self, request_id: UUID, admin_id: UUID, note: str | None = None) -> RequestBase:
        """Complete the linked ledger entry. Admin only."""
        return await self._resolve(request_id, admin_id, RequestStatus.APPROVED, note)

    async def reject(self, request_id: UUID, admin_id: UUID, note: str) -> RequestBase:
        """Reject the request; the rejected ledger entry no longer counts. Admin only."""
        return await self._resolve(request_id, admin_id, RequestStatus.REJECTED, note)

    async def _resolve(
        self,
        request_id: UUID,
        admin_id: UUID,
        new_status: RequestStatus,
        note: str | None,
    ) -> RequestBase:
        # Role first so callers without access learn nothing about the request
        await self.roles.require_role(admin_id, Role.ADMIN)
        note = (note or "").strip() or None
        if new_status == RequestStatus.REJECTED and not note:
            raise ValidationError("A reason is required to reject a request")

        request = await self.get_request(request_id)
        model = self.request_model

        async with self.lock_client.lock(
            account_lock_name(request.account_id), timeout=self.settings.lock_timeout_seconds
        ):
            try:
                result = await self.db.execute(
                    update(model)
                    .where(model.request_id == request_id, model.status == RequestStatus.PENDING.value)
                    .values(
                        status=new_status.value,
                        processed_at=datetime.now(UTC),
                        processed_by=admin_id,
                        admin_note=note,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise InvalidTransitionError(f"This {self.label} request has already been processed")

                ledger_status = LedgerStatus.COMPLETED if new_status == RequestStatus.APPROVED else LedgerStatus.REJECTED
                await self.ledger.transition(
                    request.ledger_entry_id, ledger_status, auto_commit=False, skip_lock=True
                )

                request = await self.db.get(model, request_id, populate_existing=True)
                if new_status == RequestStatus.APPROVED:
                    notification_type, message = self.approved_message(request)
                    action = AuditAction.REQUEST_APPROVED
                else:
                    notification_type, message = self.rejected_message(request)
                    action = AuditAction.REQUEST_REJECTED
                await self.notifications.create(
                    request.account_id,
                    notification_type,
                    message,
                    data={"request_id": str(request_id), "amount": request.amount},
                )
                await self.audit.record(
                    admin_id,
                    action,
                    target_id=request.account_id,
                    details={"kind": self.label, "request_id": str(request_id), "amount": request.amount, "note": note},
                )
                await self.db.commit()
            except BusinessRuleError:
                await self.db.rollback()
                raise

        logger.info(f"{self.label.capitalize()} request {request_id} {new_status.value} by {admin_id}")
        self.notifications.push(request.account_id)
        if new_status == RequestStatus.APPROVED:
            await self.after_approval(request)
        return request

    # ------------------------------------------------------------------

    async def get_request(self, request_id: UUID) -> RequestBase:
        request = await self.db.get(self.request_model, request_id, populate_existing=True)
        if not request:
            raise NotFoundError(f"{self.label.capitalize()} request not found")
        return request

    async def get_pending_for_account(self, account_id: UUID) -> RequestBase | None:
        model = self.request_model
        result = await self.db.execute(
            select(model).where(model.account_id == account_id, model.status == RequestStatus.PENDING.value)
        )
        return result.scalars().first()

    async def list_requests(self, status: RequestStatus | str | None = None, limit: int = 100) -> list[RequestBase]:
        model = self.request_model
        stmt = select(model)
        if status is not None:
            stmt = stmt.where(model.status == RequestStatus(status).value)
        result = await self.db.execute(stmt.order_by(model.requested_at).limit(limit))
        return list(result.scalars().all())

    async def list_for_account(self, account_id: UUID, limit: int = 50) -> list[RequestBase]:
        model = self.request_model
        result = await self.db.execute(
            select(model).where(model.account_id == account_id).order_by(model.requested_at.desc()).limit(limit)
        )
        return list(result.scalars().all())
