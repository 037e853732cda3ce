"""Account model mirroring identities issued by the auth provider."""
from sqlalchemy import Column, String, Integer, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime, UTC
from backend.database import Base
from backend.models.base import get_uuid_column, Role


class Account(Base):
    """Player or staff account.

    The balance columns are a materialized projection of the ledger and are
    only written by ``LedgerService`` in the same transaction as the entry
    that changes them.
    """
    __tablename__ = "accounts"

    account_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    username = Column(String(80), nullable=False)
    email = Column(String(255), nullable=True)
    role = Column(String(20), default=Role.PLAYER.value, nullable=False)
    spendable_balance = Column(Integer, default=0, nullable=False)
    withdrawable_balance = Column(Integer, default=0, nullable=False)  # Raw sum of withdrawable entries
    held_balance = Column(Integer, default=0, nullable=False)  # Pending debits
    referral_code = Column(String(16), nullable=True, unique=True, index=True)  # Issued on first request
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    ledger_entries = relationship("LedgerEntry", back_populates="account", lazy="raise")

    __table_args__ = (
        CheckConstraint("held_balance >= 0", name="ck_accounts_held_non_negative"),
    )

    def __repr__(self):
        return (f"<Account(account_id={self.account_id}, username={self.username}, role={self.role}, "
                f"spendable={self.spendable_balance})>")
