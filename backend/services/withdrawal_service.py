"""Withdrawal requests: holds on the balance resolved by an admin."""
import logging
import re
from datetime import datetime, UTC
from typing import Any, Type
from uuid import UUID

from sqlalchemy import select, func

from backend.models.base import LedgerKind, RequestStatus
from backend.models.withdrawal_request import WithdrawalRequest
from backend.services.approval_service_base import ApprovalServiceBase
from backend.services.notification_service import NotificationType
from backend.services.risk_service import RiskService
from backend.utils.datetime_helpers import is_within_daily_window
from backend.utils.exceptions import InsufficientBalanceError, OutsideWindowError, ValidationError

logger = logging.getLogger(__name__)

# Standard withdrawal packs: coins requested -> coins paid out, for regular withdrawers
PAYOUT_TIERS = {100: 95, 250: 240, 500: 490, 1000: 960}

UPI_ID_PATTERN = re.compile(r"^[\w.\-]{2,256}@[A-Za-z][A-Za-z0-9.\-]{1,63}$")


class WithdrawalService(ApprovalServiceBase):
    """Withdrawal workflow.

    A request places a hold (pending debit) on the balance, so it cannot be
    spent twice while the admin reviews it. Approval completes the debit;
    rejection releases the hold.
    """

    def __init__(self, *args, clock=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.risk = RiskService(self.db)
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def request_model(self) -> Type[WithdrawalRequest]:
        return WithdrawalRequest

    @property
    def ledger_kind(self) -> LedgerKind:
        return LedgerKind.WITHDRAWAL

    @property
    def label(self) -> str:
        return "withdrawal"

    def signed_amount(self, amount: int) -> int:
        return -amount

    async def validate_request(self, account_id: UUID, amount: int, details: dict[str, Any]) -> None:
        min_amount = await self.config.get_config_value("min_withdrawal_amount")
        if amount < min_amount:
            raise ValidationError(f"Minimum withdrawal is {min_amount} coins")

        destination = (details.get("payout_destination") or "").strip()
        if not destination:
            raise ValidationError("Please enter your UPI ID")
        if not UPI_ID_PATTERN.match(destination):
            raise ValidationError("Invalid UPI ID")
        details["payout_destination"] = destination

        await self.check_window()

    async def check_window(self) -> None:
        """
        Raise OutsideWindowError unless withdrawals are open right now.

        Window bounds are read through SystemConfigService so admins can
        change them at runtime.
        """
        if not await self.config.get_config_value("withdrawal_window_enabled"):
            return
        start = await self.config.get_config_value("withdrawal_window_start")
        end = await self.config.get_config_value("withdrawal_window_end")
        tz_name = await self.config.get_config_value("withdrawal_window_timezone")
        if not is_within_daily_window(self._clock(), start, end, tz_name):
            raise OutsideWindowError(f"Withdrawals are only accepted between {start} and {end}")

    async def check_before_create(self, account_id: UUID, amount: int, details: dict[str, Any]) -> None:
        balance = await self.balances.balance(account_id)
        if balance.withdrawable < amount:
            raise InsufficientBalanceError(
                f"Insufficient withdrawable balance - need {amount - balance.withdrawable} more coins",
                shortfall=amount - balance.withdrawable,
            )
        details["spendable_balance"] = balance.spendable

    async def build_fields(self, account_id: UUID, amount: int, details: dict[str, Any]) -> dict[str, Any]:
        destination = details["payout_destination"]
        assessment = await self.risk.assess(
            account_id,
            amount,
            destination,
            spendable_balance=details.get("spendable_balance", 0),
            now=self._clock(),
        )
        return {
            "payout_destination": destination,
            "payout_amount": await self.payout_amount(account_id, amount),
            "auto_risk_tags": assessment.tag_values,
            "risk_score": assessment.score,
        }

    async def payout_amount(self, account_id: UUID, amount: int) -> int:
        """Coins paid out; regular withdrawers pay the tier fee on standard packs."""
        completed = await self.db.scalar(
            select(func.count())
            .select_from(WithdrawalRequest)
            .where(
                WithdrawalRequest.account_id == account_id,
                WithdrawalRequest.status == RequestStatus.APPROVED.value,
            )
        )
        if (completed or 0) >= self.settings.withdrawal_fee_tier_threshold:
            return PAYOUT_TIERS.get(amount, amount)
        return amount

    def approved_message(self, request: WithdrawalRequest) -> tuple[str, str]:
        return (
            NotificationType.WITHDRAWAL_APPROVED,
            f"Your withdrawal of {request.amount} coins was approved, "
            f"{request.payout_amount} will be sent to {request.payout_destination}",
        )

    def rejected_message(self, request: WithdrawalRequest) -> tuple[str, str]:
        return (
            NotificationType.WITHDRAWAL_REJECTED,
            f"Your withdrawal of {request.amount} coins was rejected: {request.admin_note}",
        )

    async def request_withdrawal(self, account_id: UUID, amount: int, payout_destination: str) -> WithdrawalRequest:
        return await self.request(account_id, amount, payout_destination=payout_destination)
