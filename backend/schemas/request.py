"""Withdrawal and top-up request schemas."""
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from backend.schemas.base import BaseSchema


class CreateWithdrawalRequest(BaseModel):
    amount: int = Field(gt=0)
    payout_destination: str = Field(min_length=3, max_length=255)


class CreateTopUpRequest(BaseModel):
    amount: int = Field(gt=0)
    payment_method: str = Field(min_length=2, max_length=50)
    payment_reference: Optional[str] = Field(default=None, max_length=255)


class ResolveRequest(BaseModel):
    """Admin decision. Rejections must carry a note."""
    decision: Literal["approve", "reject"]
    note: Optional[str] = Field(default=None, max_length=500)


class RequestResponse(BaseSchema):
    request_id: UUID
    account_id: UUID
    amount: int
    status: str
    ledger_entry_id: int
    requested_at: datetime
    processed_at: Optional[datetime] = None
    processed_by: Optional[UUID] = None
    admin_note: Optional[str] = None


class WithdrawalResponse(RequestResponse):
    payout_destination: str
    payout_amount: int
    auto_risk_tags: list[str] = []
    risk_score: int = 0
    is_suspicious: bool = False


class TopUpResponse(RequestResponse):
    payment_method: str
    payment_reference: Optional[str] = None


class WithdrawalListResponse(BaseModel):
    requests: list[WithdrawalResponse]


class TopUpListResponse(BaseModel):
    requests: list[TopUpResponse]
