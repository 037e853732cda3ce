"""Match model for scheduled contests."""
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime, UTC
from backend.database import Base
from backend.models.base import get_uuid_column, MatchStatus, MatchType


class Match(Base):
    """Scheduled contest with an entry fee and a fixed number of slots."""
    __tablename__ = "matches"

    match_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    title = Column(String(120), nullable=True)
    match_type = Column(String(30), default=MatchType.BATTLE_ROYALE.value, nullable=False)
    entry_fee = Column(Integer, nullable=False)
    total_slots = Column(Integer, nullable=False)
    filled_slots = Column(Integer, default=0, nullable=False)
    prize_pool = Column(Integer, default=0, nullable=False)
    first_prize = Column(Integer, nullable=True)
    second_prize = Column(Integer, nullable=True)
    third_prize = Column(Integer, nullable=True)
    coins_per_kill = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default=MatchStatus.UPCOMING.value, nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
    room_id = Column(String(100), nullable=True)  # Only populated once active
    room_password = Column(String(100), nullable=True)
    created_by = get_uuid_column(nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    activated_at = Column(DateTime(timezone=True), nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    entries = relationship("MatchEntry", back_populates="match", lazy="raise")

    __table_args__ = (
        CheckConstraint("filled_slots >= 0 AND filled_slots <= total_slots", name="ck_matches_slots_in_range"),
        CheckConstraint("entry_fee >= 0", name="ck_matches_entry_fee_non_negative"),
    )

    @property
    def placement_prizes(self) -> dict[int, int]:
        """Prize per placement; falls back to the whole pool for 1st place."""
        prizes = {
            place: amount
            for place, amount in ((1, self.first_prize), (2, self.second_prize), (3, self.third_prize))
            if amount
        }
        if not prizes and self.prize_pool:
            prizes[1] = self.prize_pool
        return prizes

    @property
    def has_room_credentials(self) -> bool:
        return bool(self.room_id)

    def __repr__(self):
        return (f"<Match(match_id={self.match_id}, type={self.match_type}, status={self.status}, "
                f"slots={self.filled_slots}/{self.total_slots})>")
