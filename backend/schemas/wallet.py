"""Wallet-related Pydantic schemas."""
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from backend.schemas.base import BaseSchema


class BalanceResponse(BaseSchema):
    """Projected balance of the current account."""
    account_id: UUID
    spendable: int
    withdrawable: int
    held: int
    available: int


class LedgerEntryResponse(BaseSchema):
    """One ledger entry as shown in the transaction history."""
    entry_id: int
    kind: str
    amount: int
    status: str
    is_withdrawable: bool
    related_match_id: Optional[UUID] = None
    related_request_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_by: str
    created_at: datetime
    resolved_at: Optional[datetime] = None


class TransactionHistoryResponse(BaseModel):
    """Paginated ledger history."""
    entries: list[LedgerEntryResponse]
    total: int
    limit: int
    offset: int


class DailyRewardStatus(BaseSchema):
    available: bool
    current_streak: int
    next_reward: int
    last_claimed: Optional[date] = None


class ClaimDailyRewardResponse(BaseSchema):
    """Daily reward claim response."""
    reward_date: date
    streak_count: int
    reward_coins: int
    new_balance: int


class NotificationResponse(BaseSchema):
    notification_id: UUID
    notification_type: str
    message: str
    data: Optional[dict] = None
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int
