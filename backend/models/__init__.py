"""Database models."""
from backend.models.account import Account
from backend.models.ledger_entry import LedgerEntry
from backend.models.match import Match
from backend.models.match_entry import MatchEntry
from backend.models.withdrawal_request import WithdrawalRequest
from backend.models.topup_request import TopUpRequest
from backend.models.notification import Notification
from backend.models.audit_log import AuditLog
from backend.models.daily_reward import DailyReward
from backend.models.referral import Referral
from backend.models.system_config import SystemConfig

__all__ = [
    "Account",
    "LedgerEntry",
    "Match",
    "MatchEntry",
    "WithdrawalRequest",
    "TopUpRequest",
    "Notification",
    "AuditLog",
    "DailyReward",
    "Referral",
    "SystemConfig",
]
