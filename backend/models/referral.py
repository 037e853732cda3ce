"""Referral model linking a referring account to the account it brought in."""
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
import uuid
from datetime import datetime, UTC
from backend.database import Base
from backend.models.base import get_uuid_column, ReferralStatus


class Referral(Base):
    """One referral. Each account can be referred at most once.

    ``bonus_granted`` flips exactly once, in the same transaction as the two
    bonus ledger entries it stands for.
    """
    __tablename__ = "referrals"

    referral_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    referrer_id = get_uuid_column(ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False, index=True)
    referred_id = get_uuid_column(
        ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    status = Column(String(20), default=ReferralStatus.PENDING.value, nullable=False)
    referrer_reward = Column(Integer, nullable=False)
    referred_reward = Column(Integer, nullable=False)
    bonus_granted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("referrer_id <> referred_id", name="ck_referrals_not_self"),
    )

    def __repr__(self):
        return (f"<Referral(referrer={self.referrer_id}, referred={self.referred_id}, "
                f"status={self.status}, bonus_granted={self.bonus_granted})>")
