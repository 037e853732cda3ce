"""Base utilities and enumerations for SQLAlchemy models."""
from enum import Enum
import uuid
from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.sql import sqltypes


class LedgerKind(str, Enum):
    """Kinds of balance-affecting events."""
    ENTRY_FEE = "entry_fee"
    PRIZE = "prize"
    REFUND = "refund"
    TOPUP = "topup"
    WITHDRAWAL = "withdrawal"
    BONUS = "bonus"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class LedgerStatus(str, Enum):
    """Ledger entry status. Only PENDING entries may change."""
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class MatchType(str, Enum):
    """Match format enumeration."""
    BATTLE_ROYALE = "battle_royale"
    CLASH_SOLO = "clash_solo"
    CLASH_DUO = "clash_duo"
    CLASH_SQUAD = "clash_squad"


class MatchStatus(str, Enum):
    """Match lifecycle: upcoming -> active -> completed | cancelled."""
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ResultStatus(str, Enum):
    """Verification state of a player's submitted match result."""
    NONE = "none"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ReferralStatus(str, Enum):
    """Referral state: pending until the referred account's first approved top-up."""
    PENDING = "pending"
    COMPLETED = "completed"


class RequestStatus(str, Enum):
    """Withdrawal / top-up request status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Role(str, Enum):
    """Account roles, totally ordered player < admin < superadmin."""
    PLAYER = "player"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    @property
    def rank(self) -> int:
        return _ROLE_RANKS[self]


_ROLE_RANKS = {Role.PLAYER: 0, Role.ADMIN: 1, Role.SUPERADMIN: 2}


class RiskTag(str, Enum):
    """Advisory flags attached to withdrawal requests."""
    NEW = "NEW"
    FREQUENT = "FREQUENT"
    HIGH_AMOUNT = "HIGH_AMOUNT"
    DUPLICATE_DESTINATION = "DUPLICATE_DESTINATION"
    HIGH_RATIO = "HIGH_RATIO"


SYSTEM_ACTOR = "system"


def get_uuid_column(*args, **kwargs):
    """Get UUID column type based on database dialect.

    Uses native UUID storage on PostgreSQL and a hex string elsewhere, so the
    same models run against the local SQLite database and production.

    Example:
        account_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
        match_id = get_uuid_column(ForeignKey("matches.match_id"), nullable=False)
    """
    class AdaptiveUUID(sqltypes.TypeDecorator):
        """UUID type that stores hex strings outside PostgreSQL."""

        impl = sqltypes.String
        cache_ok = True

        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self._uses_native_uuid = False

        def load_dialect_impl(self, dialect):
            self._uses_native_uuid = dialect.name == "postgresql"
            if self._uses_native_uuid:
                return dialect.type_descriptor(PGUUID(as_uuid=True))
            return dialect.type_descriptor(String(36))

        @staticmethod
        def _coerce_uuid(value):
            if value is None or isinstance(value, uuid.UUID):
                return value
            return uuid.UUID(str(value))

        def process_bind_param(self, value, dialect):
            value = self._coerce_uuid(value)
            if value is None:
                return None
            if dialect.name == "postgresql":
                return value
            return value.hex

        def process_result_value(self, value, dialect):
            if value is None:
                return None
            return self._coerce_uuid(value)

    return Column(
        AdaptiveUUID(),
        *args,
        **kwargs
    )
