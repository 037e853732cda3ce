"""Base model for requests that move money in or out of the platform."""
from sqlalchemy import Column, DateTime, Integer, String, Text
import uuid
from datetime import datetime, UTC
from backend.database import Base
from backend.models.base import get_uuid_column, RequestStatus


class RequestBase(Base):
    """Pending external money movement resolved by an admin."""

    __abstract__ = True

    request_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    account_id = get_uuid_column(nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), default=RequestStatus.PENDING.value, nullable=False, index=True)
    ledger_entry_id = Column(Integer, nullable=False)  # Pending ledger entry backing this request
    requested_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False, index=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = get_uuid_column(nullable=True)
    admin_note = Column(Text, nullable=True)

    def __repr__(self):
        return (f"<{self.__class__.__name__}(request_id={self.request_id}, account_id={self.account_id}, "
                f"amount={self.amount}, status={self.status})>")
