"""Referral routes: share a code, use a code, follow referral progress."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import get_db
from backend.dependencies import get_current_account
from backend.models.account import Account
from backend.schemas.referral import ApplyReferralRequest, ReferralResponse, ReferralStatsResponse
from backend.services.referral_service import ReferralService
from backend.utils.retry import call_with_retry

router = APIRouter(prefix="/referrals", tags=["referrals"])


@router.get("", response_model=ReferralStatsResponse)
async def get_referral_stats(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """The caller's referral code (issued on first call) and referral counts."""
    service = ReferralService(db)
    stats = await call_with_retry(db, lambda: service.get_stats(account.account_id))
    return ReferralStatsResponse(**stats)


@router.post("/apply", response_model=ReferralResponse, status_code=201)
async def apply_referral_code(
    request: ApplyReferralRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Use a friend's code; both sides get bonus coins after the first approved top-up."""
    service = ReferralService(db)
    referral = await call_with_retry(db, lambda: service.apply_code(account.account_id, request.code))
    return ReferralResponse.model_validate(referral)
