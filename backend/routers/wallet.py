"""Wallet routes: balance, history, daily reward and notifications."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import get_db
from backend.dependencies import get_current_account
from backend.models.account import Account
from backend.schemas.wallet import (
    BalanceResponse,
    ClaimDailyRewardResponse,
    DailyRewardStatus,
    LedgerEntryResponse,
    NotificationListResponse,
    NotificationResponse,
    TransactionHistoryResponse,
)
from backend.services.balance_service import BalanceService
from backend.services.daily_reward_service import DailyRewardService
from backend.services.notification_service import NotificationService
from backend.services.wallet_service import WalletService
from backend.utils.retry import call_with_retry

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Current spendable, withdrawable and held coins."""
    balance = await BalanceService(db).balance(account.account_id)
    return BalanceResponse(**balance.to_dict())


@router.get("/transactions", response_model=TransactionHistoryResponse)
async def get_transactions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    entries, total = await WalletService(db).history(account.account_id, limit=limit, offset=offset)
    return TransactionHistoryResponse(
        entries=[LedgerEntryResponse.model_validate(entry) for entry in entries],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/daily-reward", response_model=DailyRewardStatus)
async def get_daily_reward_status(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return DailyRewardStatus(**await DailyRewardService(db).get_status(account.account_id))


@router.post("/daily-reward", response_model=ClaimDailyRewardResponse)
async def claim_daily_reward(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Claim today's reward."""
    reward = await call_with_retry(db, lambda: DailyRewardService(db).claim(account.account_id))
    balance = await BalanceService(db).balance(account.account_id)
    return ClaimDailyRewardResponse(
        reward_date=reward.reward_date,
        streak_count=reward.streak_count,
        reward_coins=reward.reward_coins,
        new_balance=balance.spendable,
    )


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    service = NotificationService(db)
    notifications = await service.list_for_account(account.account_id, unread_only=unread_only, limit=limit)
    unread = await service.list_for_account(account.account_id, unread_only=True, limit=1000)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=len(unread),
    )


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService(db).mark_read(account.account_id, notification_id)
    return NotificationResponse.model_validate(notification)


@router.post("/notifications/read-all")
async def mark_all_notifications_read(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    updated = await NotificationService(db).mark_all_read(account.account_id)
    return {"updated": updated}
