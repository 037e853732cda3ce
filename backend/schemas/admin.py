"""Admin-only request and response schemas."""
from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from backend.schemas.base import BaseSchema


class GrantRoleRequest(BaseModel):
    role: Literal["player", "admin", "superadmin"]


class AccountResponse(BaseSchema):
    account_id: UUID
    username: str
    email: Optional[str] = None
    role: str
    created_at: datetime


class AdjustBalanceRequest(BaseModel):
    amount: int
    reason: str = Field(min_length=1, max_length=500)
    withdrawable: bool = False


class ReconcileResponse(BaseModel):
    account_id: UUID
    drifted: bool
    cached: dict[str, int]
    replayed: dict[str, int]


class ConfigResponse(BaseModel):
    values: dict[str, Any]


class UpdateConfigRequest(BaseModel):
    key: str
    value: Any


class AuditLogResponse(BaseSchema):
    log_id: UUID
    actor_id: str
    target_id: Optional[str] = None
    action: str
    details: Optional[dict] = None
    created_at: datetime
