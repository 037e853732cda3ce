"""Match entry model linking an account to a slot in a match."""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime, UTC
from backend.database import Base
from backend.models.base import get_uuid_column, ResultStatus


class MatchEntry(Base):
    """Paid seat in a match plus the player's submitted result."""
    __tablename__ = "match_entries"

    entry_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    match_id = get_uuid_column(ForeignKey("matches.match_id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = get_uuid_column(ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False, index=True)
    slot_number = Column(Integer, nullable=False)
    paid = Column(Boolean, default=False, nullable=False)
    entry_fee_paid = Column(Integer, default=0, nullable=False)
    ledger_entry_id = Column(Integer, nullable=True)
    kills = Column(Integer, nullable=True)
    placement = Column(Integer, nullable=True)
    result_status = Column(String(20), default=ResultStatus.NONE.value, nullable=False)
    result_submitted_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = get_uuid_column(nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verification_note = Column(Text, nullable=True)
    refunded = Column(Boolean, default=False, nullable=False)
    joined_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    match = relationship("Match", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("match_id", "account_id", name="uq_match_entries_match_account"),
        UniqueConstraint("match_id", "slot_number", name="uq_match_entries_match_slot"),
    )

    def __repr__(self):
        return (f"<MatchEntry(match_id={self.match_id}, account_id={self.account_id}, "
                f"slot={self.slot_number}, result={self.result_status})>")
