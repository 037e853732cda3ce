"""Top-up requests: deposits credited once an admin confirms payment."""
import logging
from typing import Any, Type
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from backend.models.base import LedgerKind
from backend.models.topup_request import TopUpRequest
from backend.services.approval_service_base import ApprovalServiceBase
from backend.services.notification_service import NotificationType
from backend.services.referral_service import ReferralService
from backend.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("upi", "bank_transfer", "paytm", "phonepe", "gpay")


class TopUpService(ApprovalServiceBase):
    """Top-up workflow. Pending credits do not count until approved."""

    @property
    def request_model(self) -> Type[TopUpRequest]:
        return TopUpRequest

    @property
    def ledger_kind(self) -> LedgerKind:
        return LedgerKind.TOPUP

    @property
    def label(self) -> str:
        return "top-up"

    def signed_amount(self, amount: int) -> int:
        return amount

    async def validate_request(self, account_id: UUID, amount: int, details: dict[str, Any]) -> None:
        min_amount = await self.config.get_config_value("min_topup_amount")
        max_amount = await self.config.get_config_value("max_topup_amount")
        if amount < min_amount:
            raise ValidationError(f"Minimum top-up is {min_amount} coins")
        if amount > max_amount:
            raise ValidationError(f"Maximum top-up is {max_amount} coins")

        method = (details.get("payment_method") or "").strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
        details["payment_method"] = method

    async def build_fields(self, account_id: UUID, amount: int, details: dict[str, Any]) -> dict[str, Any]:
        reference = (details.get("payment_reference") or "").strip() or None
        return {"payment_method": details["payment_method"], "payment_reference": reference}

    def approved_message(self, request: TopUpRequest) -> tuple[str, str]:
        return NotificationType.TOPUP_APPROVED, f"{request.amount} coins were added to your wallet"

    def rejected_message(self, request: TopUpRequest) -> tuple[str, str]:
        return NotificationType.TOPUP_REJECTED, f"Your top-up of {request.amount} coins was rejected: {request.admin_note}"

    async def after_approval(self, request: TopUpRequest) -> None:
        """Complete a pending referral once the referred account's top-up lands."""
        account_id, request_id = request.account_id, request.request_id
        referrals = ReferralService(self.db, lock_client=self.lock_client, realtime=self.notifications.realtime)
        try:
            await referrals.grant_bonus(account_id)
        except SQLAlchemyError as e:
            # The top-up is already committed; the next approved top-up retries the bonus
            await self.db.rollback()
            await self.db.refresh(request)
            logger.error(f"Referral bonus for {account_id} failed after top-up {request_id}: {e}")

    async def request_topup(
        self,
        account_id: UUID,
        amount: int,
        payment_method: str,
        payment_reference: str | None = None,
    ) -> TopUpRequest:
        return await self.request(
            account_id, amount, payment_method=payment_method, payment_reference=payment_reference
        )
