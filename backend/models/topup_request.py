"""Top-up request model."""
from sqlalchemy import Column, Index, String, text
from backend.models.request_base import RequestBase


class TopUpRequest(RequestBase):
    """Deposit of coins paid for outside the platform."""
    __tablename__ = "topup_requests"

    payment_method = Column(String(50), nullable=False)
    payment_reference = Column(String(255), nullable=True)  # UTR number or screenshot URL

    __table_args__ = (
        Index(
            "uq_topup_requests_one_pending",
            "account_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )
