"""Player routes for withdrawal and top-up requests."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import get_db
from backend.dependencies import get_current_account
from backend.models.account import Account
from backend.schemas.request import (
    CreateTopUpRequest,
    CreateWithdrawalRequest,
    TopUpListResponse,
    TopUpResponse,
    WithdrawalListResponse,
    WithdrawalResponse,
)
from backend.services.topup_service import TopUpService
from backend.services.withdrawal_service import WithdrawalService
from backend.utils.retry import call_with_retry

router = APIRouter(tags=["requests"])


@router.post("/withdrawals", response_model=WithdrawalResponse, status_code=201)
async def request_withdrawal(
    request: CreateWithdrawalRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Request a payout; the coins are held until an admin decides."""
    service = WithdrawalService(db)
    withdrawal = await call_with_retry(
        db,
        lambda: service.request_withdrawal(account.account_id, request.amount, request.payout_destination),
    )
    return WithdrawalResponse.model_validate(withdrawal)


@router.get("/withdrawals", response_model=WithdrawalListResponse)
async def list_withdrawals(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    requests = await WithdrawalService(db).list_for_account(account.account_id)
    return WithdrawalListResponse(requests=[WithdrawalResponse.model_validate(r) for r in requests])


@router.post("/topups", response_model=TopUpResponse, status_code=201)
async def request_topup(
    request: CreateTopUpRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Report a payment; coins are credited once an admin confirms it."""
    service = TopUpService(db)
    topup = await call_with_retry(
        db,
        lambda: service.request_topup(
            account.account_id, request.amount, request.payment_method, request.payment_reference
        ),
    )
    return TopUpResponse.model_validate(topup)


@router.get("/topups", response_model=TopUpListResponse)
async def list_topups(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    requests = await TopUpService(db).list_for_account(account.account_id)
    return TopUpListResponse(requests=[TopUpResponse.model_validate(r) for r in requests])
