"""Ledger entry model: the append-only record of balance-affecting events."""
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from datetime import datetime, UTC
from backend.database import Base
from backend.models.base import get_uuid_column, LedgerStatus, SYSTEM_ACTOR


class LedgerEntry(Base):
    """One immutable, signed balance movement (negative for debits)."""
    __tablename__ = "ledger_entries"

    entry_id = Column(Integer, primary_key=True, autoincrement=True)  # Insertion order
    account_id = get_uuid_column(ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String(30), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), default=LedgerStatus.COMPLETED.value, nullable=False)
    is_withdrawable = Column(Boolean, default=True, nullable=False)  # False for bonus coins
    related_match_id = get_uuid_column(nullable=True, index=True)
    related_request_id = get_uuid_column(nullable=True, index=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(64), default=SYSTEM_ACTOR, nullable=False)  # "system" or admin account id
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    account = relationship("Account", back_populates="ledger_entries")

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_ledger_entries_amount_nonzero"),
        Index("ix_ledger_entries_account_status", "account_id", "status"),
        Index("ix_ledger_entries_match_kind", "related_match_id", "kind"),
    )

    def __repr__(self):
        return (f"<LedgerEntry(entry_id={self.entry_id}, account_id={self.account_id}, kind={self.kind}, "
                f"amount={self.amount}, status={self.status})>")
