"""Withdrawal request model."""
from sqlalchemy import Column, Index, Integer, JSON, String, text
from backend.models.request_base import RequestBase


class WithdrawalRequest(RequestBase):
    """Payout of coins to an external UPI destination."""
    __tablename__ = "withdrawal_requests"

    payout_destination = Column(String(255), nullable=False, index=True)
    payout_amount = Column(Integer, nullable=False)  # Coins paid out after tier fees
    auto_risk_tags = Column(JSON, default=lambda: [], nullable=False)
    risk_score = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index(
            "uq_withdrawal_requests_one_pending",
            "account_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    @property
    def is_suspicious(self) -> bool:
        from backend.config import get_settings
        return (self.risk_score or 0) > get_settings().risk_suspicious_score
