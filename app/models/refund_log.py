"""Ledger of refunds issued against booking, appointment and ticket payments."""

from sqlalchemy import Column, String, DateTime, Float, Text, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.types import JSON
import uuid
from datetime import datetime
import enum
from app.core.database import Base


class RefundStatus(str, enum.Enum):
    REQUESTED = "requested"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    REQUIRES_ACTION = "requires_action"


# Statuses of a log row still waiting for Stripe to report the refund id.
OPEN_REFUND_STATUSES = (
    RefundStatus.REQUESTED.value,
    RefundStatus.PENDING.value,
    RefundStatus.REQUIRES_ACTION.value,
)


class PaymentRefundLog(Base):
    __tablename__ = "payment_refund_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_intent_id = Column(String, nullable=False, index=True)
    refund_id = Column(String, nullable=True, index=True)
    source_model = Column(String, nullable=False)
    source_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    source_payment_field = Column(String, nullable=False, default="payment_intent_id")
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(String, nullable=False, default=RefundStatus.REQUESTED.value, index=True)
    reason = Column(String, nullable=True)
    note = Column(Text, nullable=True)
    idempotency_key = Column(String, nullable=False, unique=True)
    stripe_error = Column(Text, nullable=True)
    details = Column("metadata", JSON, nullable=True)
    refunded_by_admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def normalize_refund_status(status) -> str:
    """Map a Stripe refund status onto the ledger's allowed set; unknown -> pending."""
    allowed = {s.value for s in RefundStatus}
    if status in allowed:
        return status
    return RefundStatus.PENDING.value
