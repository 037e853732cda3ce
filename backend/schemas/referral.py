"""Referral schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from backend.schemas.base import BaseSchema


class ApplyReferralRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32)


class ReferralResponse(BaseSchema):
    referral_id: UUID
    referrer_id: UUID
    referred_id: UUID
    status: str
    referrer_reward: int
    referred_reward: int
    bonus_granted: bool
    created_at: datetime
    completed_at: Optional[datetime] = None


class ReferralStatsResponse(BaseSchema):
    """The caller's referral code and how its referrals are doing."""
    referral_code: str
    total_referrals: int
    completed_referrals: int
    pending_referrals: int
    coins_earned: int
