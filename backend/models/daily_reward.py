"""Daily reward claim model."""
from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, UniqueConstraint
import uuid
from datetime import datetime, UTC
from backend.database import Base
from backend.models.base import get_uuid_column


class DailyReward(Base):
    """One claimed daily login reward."""
    __tablename__ = "daily_rewards"

    reward_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    account_id = get_uuid_column(ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False, index=True)
    reward_date = Column(Date, nullable=False)
    streak_count = Column(Integer, nullable=False)
    reward_coins = Column(Integer, nullable=False)
    ledger_entry_id = Column(Integer, nullable=True)
    claimed_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "reward_date", name="uq_daily_rewards_account_date"),
    )

    def __repr__(self):
        return f"<DailyReward(account_id={self.account_id}, date={self.reward_date}, streak={self.streak_count})>"
