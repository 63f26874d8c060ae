# freshmarket/models/webhook_event.py
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, Text
from freshmarket.database import Base


class WebhookEventStatus(str, enum.Enum):
    RECEIVED = "received"
    PROCESSED = "processed"
    IGNORED = "ignored"
    # No order matched yet; the payment reference may not be stored yet
    UNMATCHED = "unmatched"
    # Did not survive the check against FedaPay
    REJECTED = "rejected"
    FAILED = "failed"


def _utcnow():
    return datetime.now(timezone.utc)


# Every gateway notification is stored before it is applied, so a failure
# can be retried later instead of being lost behind the 200 answer.
class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(20), nullable=False, default="fedapay")
    event = Column(String(64), nullable=False, index=True)
    transaction_id = Column(String(64), nullable=True, index=True)
    payload = Column(JSON, nullable=False)
    # Arrived with a valid signature
    verified = Column(Boolean, nullable=False, default=False)

    status = Column(String(20), nullable=False, default=WebhookEventStatus.RECEIVED.value, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)
