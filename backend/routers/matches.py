"""Player-facing match routes."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import get_db
from backend.dependencies import get_current_account
from backend.models.account import Account
from backend.models.base import MatchStatus
from backend.models.match import Match
from backend.models.match_entry import MatchEntry
from backend.schemas.match import (
    JoinMatchRequest,
    MatchEntryResponse,
    MatchListResponse,
    MatchResponse,
    SubmitResultRequest,
)
from backend.services.match_service import MatchService
from backend.utils.retry import call_with_retry

router = APIRouter(prefix="/matches", tags=["matches"])


def serialize_match(match: Match, entry: Optional[MatchEntry] = None) -> MatchResponse:
    """Match view for one account; room credentials only for joined players of an active match."""
    response = MatchResponse.model_validate(match)
    reveal = entry is not None and match.status == MatchStatus.ACTIVE.value
    if not reveal:
        response.room_id = None
        response.room_password = None
    response.joined = entry is not None
    response.slot_number = entry.slot_number if entry else None
    return response


@router.get("", response_model=MatchListResponse)
async def list_matches(
    status: Optional[MatchStatus] = Query(default=None),
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    service = MatchService(db)
    matches = await service.list_matches(status=status)
    items = []
    for match in matches:
        entry = await service.get_entry(match.match_id, account.account_id)
        items.append(serialize_match(match, entry))
    return MatchListResponse(matches=items)


@router.get("/{match_id}", response_model=MatchResponse)
async def get_match(
    match_id: UUID,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    service = MatchService(db)
    match = await service.get_match(match_id)
    return serialize_match(match, await service.get_entry(match_id, account.account_id))


@router.post("/{match_id}/join", response_model=MatchEntryResponse)
async def join_match(
    match_id: UUID,
    request: Optional[JoinMatchRequest] = None,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Reserve a slot and pay the entry fee."""
    service = MatchService(db)
    entry = await call_with_retry(
        db, lambda: service.join_match(match_id, account.account_id, entry_fee=request.entry_fee if request else None)
    )
    return MatchEntryResponse.model_validate(entry)


@router.post("/{match_id}/result", response_model=MatchEntryResponse)
async def submit_result(
    match_id: UUID,
    request: SubmitResultRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Submit kills and placement for admin verification."""
    service = MatchService(db)
    entry = await call_with_retry(
        db, lambda: service.submit_result(match_id, account.account_id, request.kills, request.placement)
    )
    return MatchEntryResponse.model_validate(entry)
