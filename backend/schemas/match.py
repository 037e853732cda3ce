"""Match-related Pydantic schemas."""
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from backend.schemas.base import BaseSchema

MatchTypeLiteral = Literal["battle_royale", "clash_solo", "clash_duo", "clash_squad"]


class MatchResponse(BaseSchema):
    """Public view of a match. Room credentials are filled in only for joined players."""
    match_id: UUID
    title: Optional[str] = None
    match_type: str
    entry_fee: int
    total_slots: int
    filled_slots: int
    prize_pool: int
    first_prize: Optional[int] = None
    second_prize: Optional[int] = None
    third_prize: Optional[int] = None
    coins_per_kill: int
    status: str
    start_time: Optional[datetime] = None
    room_id: Optional[str] = None
    room_password: Optional[str] = None
    created_at: datetime
    settled_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    joined: bool = False
    slot_number: Optional[int] = None


class MatchListResponse(BaseModel):
    matches: list[MatchResponse]


class MatchEntryResponse(BaseSchema):
    entry_id: UUID
    match_id: UUID
    account_id: UUID
    slot_number: int
    paid: bool
    entry_fee_paid: int
    kills: Optional[int] = None
    placement: Optional[int] = None
    result_status: str
    verified_by: Optional[UUID] = None
    verified_at: Optional[datetime] = None
    refunded: bool
    joined_at: datetime


class JoinMatchRequest(BaseModel):
    """Optional fee the client expects to pay; rejected if it no longer matches."""
    entry_fee: Optional[int] = Field(default=None, ge=0)


class SubmitResultRequest(BaseModel):
    kills: int = Field(ge=0)
    placement: int = Field(ge=1)


class CreateMatchRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=120)
    match_type: MatchTypeLiteral = "battle_royale"
    entry_fee: int = Field(ge=0)
    total_slots: int = Field(ge=1)
    prize_pool: int = Field(default=0, ge=0)
    first_prize: Optional[int] = Field(default=None, ge=0)
    second_prize: Optional[int] = Field(default=None, ge=0)
    third_prize: Optional[int] = Field(default=None, ge=0)
    coins_per_kill: int = Field(default=0, ge=0)
    start_time: Optional[datetime] = None


class ActivateMatchRequest(BaseModel):
    room_id: Optional[str] = Field(default=None, max_length=100)
    room_password: Optional[str] = Field(default=None, max_length=100)

    @model_validator(mode="after")
    def password_needs_room(self):
        if self.room_password and not self.room_id:
            raise ValueError("room_password given without room_id")
        return self


class VerifyResultRequest(BaseModel):
    account_id: UUID
    approve: bool
    note: Optional[str] = Field(default=None, max_length=500)


class SettlementResult(BaseModel):
    account_id: UUID
    placement: int = Field(ge=1)
    kills: int = Field(default=0, ge=0)


class SettleMatchRequest(BaseModel):
    results: list[SettlementResult] = Field(default_factory=list)


class SettleMatchResponse(BaseModel):
    match_id: UUID
    status: str
    prizes_paid: int
    total_coins: int


class CancelMatchResponse(BaseModel):
    match_id: UUID
    status: str
    refunds_issued: int
