from backend.services.system_config_service import SystemConfigService
from backend.services.ledger_service import LedgerService
from backend.services.balance_service import Balance, BalanceService, Reconciliation
from backend.services.account_service import AccountService
from backend.services.audit_service import AuditAction, AuditService
from backend.services.role_service import RoleService
from backend.services.notification_service import NotificationService, NotificationType
from backend.services.realtime_service import RealtimeService, get_realtime_service

# Match economy
from backend.services.matchmaking_client import (
    MatchmakingClient,
    MatchmakingServiceError,
    RoomCredentials,
    get_matchmaking_client,
)
from backend.services.match_service import MatchService

# Money in and out
from backend.services.approval_service_base import ApprovalServiceBase
from backend.services.risk_service import RiskAssessment, RiskService
from backend.services.withdrawal_service import WithdrawalService, PAYOUT_TIERS
from backend.services.topup_service import TopUpService
from backend.services.wallet_service import WalletService
from backend.services.daily_reward_service import DailyRewardService, streak_reward

__all__ = [
    "SystemConfigService",
    "LedgerService",
    "Balance",
    "BalanceService",
    "Reconciliation",
    "AccountService",
    "AuditAction",
    "AuditService",
    "RoleService",
    "NotificationService",
    "NotificationType",
    "RealtimeService",
    "get_realtime_service",
    "MatchmakingClient",
    "MatchmakingServiceError",
    "RoomCredentials",
    "get_matchmaking_client",
    "MatchService",
    "ApprovalServiceBase",
    "RiskAssessment",
    "RiskService",
    "WithdrawalService",
    "PAYOUT_TIERS",
    "TopUpService",
    "WalletService",
    "DailyRewardService",
    "streak_reward",
]
