"""Admin routes: match management, request review, roles and wallet tools.

Every service call re-checks the caller's role from the database; the
``get_admin_account`` dependency only fails fast for players.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import get_db
from backend.dependencies import get_admin_account
from backend.models.account import Account
from backend.models.base import RequestStatus, Role
from backend.schemas.admin import (
    AccountResponse,
    AdjustBalanceRequest,
    AuditLogResponse,
    ConfigResponse,
    GrantRoleRequest,
    ReconcileResponse,
    UpdateConfigRequest,
)
from backend.schemas.match import (
    ActivateMatchRequest,
    CancelMatchResponse,
    CreateMatchRequest,
    MatchEntryResponse,
    MatchResponse,
    SettleMatchRequest,
    SettleMatchResponse,
    VerifyResultRequest,
)
from backend.schemas.request import (
    ResolveRequest,
    TopUpListResponse,
    TopUpResponse,
    WithdrawalListResponse,
    WithdrawalResponse,
)
from backend.schemas.wallet import LedgerEntryResponse
from backend.services.audit_service import AuditAction, AuditService
from backend.services.match_service import MatchService
from backend.services.role_service import RoleService
from backend.services.system_config_service import SystemConfigService
from backend.services.topup_service import TopUpService
from backend.services.wallet_service import WalletService
from backend.services.withdrawal_service import WithdrawalService
from backend.utils.retry import call_with_retry

router = APIRouter(prefix="/admin", tags=["admin"])


def _totals(values: tuple[int, int, int]) -> dict[str, int]:
    return dict(zip(("spendable", "withdrawable", "held"), values))


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

@router.post("/matches", response_model=MatchResponse, status_code=201)
async def create_match(
    request: CreateMatchRequest,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    match = await MatchService(db).create_match(admin.account_id, **request.model_dump())
    return MatchResponse.model_validate(match)


@router.get("/matches/{match_id}/entries", response_model=list[MatchEntryResponse])
async def list_match_entries(
    match_id: UUID,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    service = MatchService(db)
    await service.get_match(match_id)
    return [MatchEntryResponse.model_validate(entry) for entry in await service.get_entries(match_id)]


@router.post("/matches/{match_id}/activate", response_model=MatchResponse)
async def activate_match(
    match_id: UUID,
    request: Optional[ActivateMatchRequest] = None,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    """Start the match; credentials come from the request or the matchmaking service."""
    request = request or ActivateMatchRequest()
    service = MatchService(db)
    match = await call_with_retry(
        db,
        lambda: service.activate_match(match_id, admin.account_id, request.room_id, request.room_password),
    )
    return MatchResponse.model_validate(match)


@router.post("/matches/{match_id}/refresh-credentials", response_model=MatchResponse)
async def refresh_room_credentials(
    match_id: UUID,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    match = await MatchService(db).refresh_room_credentials(match_id, admin.account_id)
    return MatchResponse.model_validate(match)


@router.post("/matches/{match_id}/verify", response_model=MatchEntryResponse)
async def verify_result(
    match_id: UUID,
    request: VerifyResultRequest,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    service = MatchService(db)
    entry = await call_with_retry(
        db,
        lambda: service.verify_result(match_id, request.account_id, admin.account_id, request.approve, request.note),
    )
    return MatchEntryResponse.model_validate(entry)


@router.post("/matches/{match_id}/settle", response_model=SettleMatchResponse)
async def settle_match(
    match_id: UUID,
    request: Optional[SettleMatchRequest] = None,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    """Pay prizes from verified results and complete the match."""
    results = [result.model_dump() for result in request.results] if request else None
    service = MatchService(db)
    prizes = await call_with_retry(db, lambda: service.settle_match(match_id, admin.account_id, results))
    return SettleMatchResponse(
        match_id=match_id,
        status="completed",
        prizes_paid=len(prizes),
        total_coins=sum(prize.amount for prize in prizes),
    )


@router.post("/matches/{match_id}/cancel", response_model=CancelMatchResponse)
async def cancel_match(
    match_id: UUID,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    """Cancel and refund. Safe to call again to finish interrupted refunds."""
    service = MatchService(db)
    refunds = await call_with_retry(db, lambda: service.cancel_match(match_id, admin.account_id))
    return CancelMatchResponse(match_id=match_id, status="cancelled", refunds_issued=refunds)


# ---------------------------------------------------------------------------
# Withdrawals and top-ups
# ---------------------------------------------------------------------------

@router.get("/withdrawals", response_model=WithdrawalListResponse)
async def list_withdrawals(
    status: Optional[RequestStatus] = Query(default=RequestStatus.PENDING),
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    requests = await WithdrawalService(db).list_requests(status=status)
    return WithdrawalListResponse(requests=[WithdrawalResponse.model_validate(r) for r in requests])


@router.post("/withdrawals/{request_id}", response_model=WithdrawalResponse)
async def resolve_withdrawal(
    request_id: UUID,
    request: ResolveRequest,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    service = WithdrawalService(db)
    resolve = service.approve if request.decision == "approve" else service.reject
    withdrawal = await call_with_retry(db, lambda: resolve(request_id, admin.account_id, request.note))
    return WithdrawalResponse.model_validate(withdrawal)


@router.get("/topups", response_model=TopUpListResponse)
async def list_topups(
    status: Optional[RequestStatus] = Query(default=RequestStatus.PENDING),
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    requests = await TopUpService(db).list_requests(status=status)
    return TopUpListResponse(requests=[TopUpResponse.model_validate(r) for r in requests])


@router.post("/topups/{request_id}", response_model=TopUpResponse)
async def resolve_topup(
    request_id: UUID,
    request: ResolveRequest,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    service = TopUpService(db)
    resolve = service.approve if request.decision == "approve" else service.reject
    topup = await call_with_retry(db, lambda: resolve(request_id, admin.account_id, request.note))
    return TopUpResponse.model_validate(topup)


# ---------------------------------------------------------------------------
# Accounts and wallets
# ---------------------------------------------------------------------------

@router.post("/accounts/{account_id}/role", response_model=AccountResponse)
async def grant_role(
    account_id: UUID,
    request: GrantRoleRequest,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    """Change an account's role. Superadmin only."""
    account = await RoleService(db).grant_role(admin.account_id, account_id, Role(request.role))
    return AccountResponse.model_validate(account)


@router.post("/accounts/{account_id}/adjust", response_model=LedgerEntryResponse)
async def adjust_balance(
    account_id: UUID,
    request: AdjustBalanceRequest,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    service = WalletService(db)
    entry = await call_with_retry(
        db,
        lambda: service.adjust_balance(
            admin.account_id, account_id, request.amount, request.reason, withdrawable=request.withdrawable
        ),
    )
    return LedgerEntryResponse.model_validate(entry)


@router.post("/accounts/{account_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_balance(
    account_id: UUID,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    outcome = await WalletService(db).reconcile(admin.account_id, account_id)
    return ReconcileResponse(
        account_id=account_id,
        drifted=outcome.drifted,
        cached=_totals(outcome.cached),
        replayed=_totals(outcome.replayed),
    )


@router.get("/audit", response_model=list[AuditLogResponse])
async def list_audit_logs(
    action: Optional[str] = None,
    target_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    logs = await AuditService(db).list_logs(action=action, target_id=target_id, limit=limit)
    return [AuditLogResponse.model_validate(log) for log in logs]


# ---------------------------------------------------------------------------
# Runtime configuration
# ---------------------------------------------------------------------------

@router.get("/config", response_model=ConfigResponse)
async def get_config(
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    return ConfigResponse(values=await SystemConfigService(db).get_all_config())


@router.patch("/config", response_model=ConfigResponse)
async def update_config(
    request: UpdateConfigRequest,
    admin: Account = Depends(get_admin_account),
    db: AsyncSession = Depends(get_db),
):
    """Update a runtime configuration value. Superadmin only."""
    await RoleService(db).require_role(admin.account_id, Role.SUPERADMIN)
    service = SystemConfigService(db)
    await AuditService(db).record(
        admin.account_id,
        AuditAction.CONFIG_UPDATED,
        details={"key": request.key, "value": request.value},
    )
    await service.set_config_value(request.key, request.value, updated_by=str(admin.account_id))
    return ConfigResponse(values=await service.get_all_config())
