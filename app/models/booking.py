"""Booking models for services without appointment slots.

``Booking`` belongs to a provider's service; ``BusinessOwnerBooking`` to an
employee service of a business owner. Both share columns and the payment
rules enforced on every flush.
"""

from sqlalchemy import Column, String, DateTime, Float, Integer, Text, ForeignKey, Index, event
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.types import JSON
import uuid
from datetime import datetime
import enum
from app.core.config import settings
from app.core.database import Base
from app.core.exceptions import InvariantViolation
from app.core.money import round_money


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class BookingPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    PARTIAL = "partial"
    DUE_REQUESTED = "due_requested"
    COMPLETED = "completed"
    OFFLINE_PAID = "offline_paid"
    REFUNDED = "refunded"


class PaidVia(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class CancelledBy(str, enum.Enum):
    USER = "user"
    PROVIDER = "provider"
    ADMIN = "admin"


SETTLED_PAYMENT_STATUSES = (BookingPaymentStatus.COMPLETED.value, BookingPaymentStatus.OFFLINE_PAID.value)

# Statuses set by Stripe events or the due flow that the balance rule must not overwrite.
STICKY_PAYMENT_STATUSES = (
    BookingPaymentStatus.DUE_REQUESTED.value,
    BookingPaymentStatus.AUTHORIZED.value,
    BookingPaymentStatus.REFUNDED.value,
)


class BookingMixin:
    booking_date = Column(DateTime, nullable=False)
    service_snapshot = Column(JSON, nullable=False)

    total_amount = Column(Float, nullable=False)
    down_payment = Column(Float, nullable=False, default=0)
    platform_fee = Column(Float, nullable=False, default=0)
    owner_payout = Column(Float, nullable=False, default=0)
    due_amount = Column(Float, nullable=False, default=0)
    remaining_amount = Column(Float, nullable=False, default=0)

    payment_status = Column(String, nullable=False, default=BookingPaymentStatus.PENDING.value, index=True)
    payment_intent_id = Column(String, nullable=True, index=True)
    payment_intent_status = Column(String, nullable=True)
    checkout_session_id = Column(String, nullable=True, index=True)
    checkout_session_url = Column(Text, nullable=True)
    due_payment_intent_id = Column(String, nullable=True, index=True)
    due_payment_intent_status = Column(String, nullable=True)
    due_requested_at = Column(DateTime, nullable=True)
    due_paid_at = Column(DateTime, nullable=True)
    offline_paid_at = Column(DateTime, nullable=True)
    paid_via = Column(String, nullable=True)

    booking_status = Column(String, nullable=False, default=BookingStatus.PENDING.value, index=True)
    user_notes = Column(String(500), nullable=True)
    provider_notes = Column(String(500), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    rating = Column(Integer, nullable=True)
    review = Column(String(500), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    kind = "booking"

    @property
    def status(self) -> str:
        return self.booking_status


class Booking(BookingMixin, Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_user_created", "user_id", "created_at"),
        Index("ix_bookings_provider_created", "provider_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True)
    provider_id = Column(UUID(as_uuid=True), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)


class BusinessOwnerBooking(BookingMixin, Base):
    __tablename__ = "business_owner_bookings"
    __table_args__ = (
        Index("ix_bo_bookings_user_created", "user_id", "created_at"),
        Index("ix_bo_bookings_owner_created", "business_owner_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    employee_service_id = Column(UUID(as_uuid=True), ForeignKey("employee_services.id", ondelete="SET NULL"), nullable=True, index=True)
    business_owner_id = Column(UUID(as_uuid=True), ForeignKey("business_owners.id", ondelete="CASCADE"), nullable=False)


def check_down_payment(booking: BookingMixin) -> None:
    """Reject a down payment below the required share of the total."""
    total = booking.total_amount or 0
    down = booking.down_payment or 0
    if total <= 0:
        return
    minimum = round_money(total * settings.BOOKING_REQUIRED_DOWN_PAYMENT_RATE)
    if down < minimum:
        raise InvariantViolation(
            f"Down payment must be at least {int(settings.BOOKING_REQUIRED_DOWN_PAYMENT_RATE * 100)}% "
            f"of total amount (minimum: ${minimum:.2f})"
        )
    if down > total:
        raise InvariantViolation("Down payment cannot exceed total amount")


def derive_booking_payment(booking: BookingMixin) -> None:
    """Keep remaining_amount and payment_status consistent with the amounts."""
    if booking.payment_status in SETTLED_PAYMENT_STATUSES:
        booking.remaining_amount = 0
        return

    remaining = round_money((booking.total_amount or 0) - (booking.down_payment or 0))
    booking.remaining_amount = max(remaining, 0)

    if booking.payment_status in STICKY_PAYMENT_STATUSES and remaining > 0:
        return
    if remaining <= 0:
        booking.payment_status = BookingPaymentStatus.COMPLETED.value
        booking.remaining_amount = 0
    elif (booking.down_payment or 0) > 0:
        booking.payment_status = BookingPaymentStatus.PARTIAL.value
    else:
        booking.payment_status = BookingPaymentStatus.PENDING.value


def _before_save(mapper, connection, target):
    check_down_payment(target)
    derive_booking_payment(target)


for _model in (Booking, BusinessOwnerBooking):
    event.listen(_model, "before_insert", _before_save)
    event.listen(_model, "before_update", _before_save)
