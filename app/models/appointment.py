"""Appointment models for services with bookable time slots.

Times are stored as zero-padded ``HH:MM`` strings in the business's wall
clock; ``slot_owner_id`` is the key whose calendar the slot occupies (the
provider for ``Appointment``, the employee service for
``BusinessOwnerAppointment``).
"""

from sqlalchemy import Column, String, DateTime, Date, Float, Integer, Text, ForeignKey, Index, event, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.types import JSON
import uuid
from datetime import datetime
import enum
from app.core.database import Base
from app.core.exceptions import InvalidTimeSlot
from app.core.money import round_money
from app.services.timeslots import parse_hhmm


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    NO_SHOW = "no_show"


class AppointmentPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"
    OFFLINE_PAID = "offline_paid"
    REFUNDED = "refunded"


# Only these statuses hold a slot on the owner's calendar.
ACTIVE_APPOINTMENT_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)

_ACTIVE_SLOT_CLAUSE = text("appointment_status IN ('pending', 'confirmed')")


class AppointmentMixin:
    appointment_date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    selected_slot = Column(JSON, nullable=False)
    service_snapshot = Column(JSON, nullable=False)

    total_amount = Column(Float, nullable=False)
    down_payment = Column(Float, nullable=False, default=0)
    platform_fee = Column(Float, nullable=False, default=0)
    owner_payout = Column(Float, nullable=False, default=0)
    remaining_amount = Column(Float, nullable=False, default=0)

    payment_status = Column(String, nullable=False, default=AppointmentPaymentStatus.PENDING.value, index=True)
    payment_intent_id = Column(String, nullable=True, index=True)
    payment_intent_status = Column(String, nullable=True)
    checkout_session_id = Column(String, nullable=True, index=True)
    checkout_session_url = Column(Text, nullable=True)
    paid_via = Column(String, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    appointment_status = Column(String, nullable=False, default=AppointmentStatus.PENDING.value, index=True)
    user_notes = Column(String(500), nullable=True)
    provider_notes = Column(String(1000), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    rating = Column(Integer, nullable=True)
    review = Column(String(500), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    kind = "appointment"

    @property
    def status(self) -> str:
        return self.appointment_status


class Appointment(AppointmentMixin, Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_user_created", "user_id", "created_at"),
        Index("ix_appointments_provider_created", "provider_id", "created_at"),
        Index("ix_appointments_slot", "slot_owner_id", "appointment_date", "start_time"),
        Index(
            "uq_appointments_active_slot",
            "slot_owner_id", "appointment_date", "start_time",
            unique=True,
            postgresql_where=_ACTIVE_SLOT_CLAUSE,
            sqlite_where=_ACTIVE_SLOT_CLAUSE,
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True)
    provider_id = Column(UUID(as_uuid=True), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    slot_owner_id = Column(UUID(as_uuid=True), nullable=False)


class BusinessOwnerAppointment(AppointmentMixin, Base):
    __tablename__ = "business_owner_appointments"
    __table_args__ = (
        Index("ix_bo_appointments_user_created", "user_id", "created_at"),
        Index("ix_bo_appointments_owner_created", "business_owner_id", "created_at"),
        Index("ix_bo_appointments_slot", "slot_owner_id", "appointment_date", "start_time"),
        Index(
            "uq_bo_appointments_active_slot",
            "slot_owner_id", "appointment_date", "start_time",
            unique=True,
            postgresql_where=_ACTIVE_SLOT_CLAUSE,
            sqlite_where=_ACTIVE_SLOT_CLAUSE,
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    employee_service_id = Column(UUID(as_uuid=True), ForeignKey("employee_services.id", ondelete="SET NULL"), nullable=True, index=True)
    business_owner_id = Column(UUID(as_uuid=True), ForeignKey("business_owners.id", ondelete="CASCADE"), nullable=False)
    slot_owner_id = Column(UUID(as_uuid=True), nullable=False)


def derive_appointment_payment(appointment: AppointmentMixin) -> None:
    """Keep remaining_amount and payment_status consistent with the amounts."""
    if appointment.payment_status in (AppointmentPaymentStatus.COMPLETED.value, AppointmentPaymentStatus.OFFLINE_PAID.value):
        appointment.remaining_amount = 0
        return

    remaining = round_money((appointment.total_amount or 0) - (appointment.down_payment or 0))
    appointment.remaining_amount = max(remaining, 0)

    if appointment.payment_status == AppointmentPaymentStatus.REFUNDED.value and remaining > 0:
        return
    if remaining <= 0:
        appointment.payment_status = AppointmentPaymentStatus.COMPLETED.value
        appointment.remaining_amount = 0
    elif (appointment.down_payment or 0) > 0:
        appointment.payment_status = AppointmentPaymentStatus.PARTIAL.value
    else:
        appointment.payment_status = AppointmentPaymentStatus.PENDING.value


def _before_save(mapper, connection, target):
    if parse_hhmm(target.end_time) <= parse_hhmm(target.start_time):
        raise InvalidTimeSlot("End time must be after start time")
    derive_appointment_payment(target)


for _model in (Appointment, BusinessOwnerAppointment):
    event.listen(_model, "before_insert", _before_save)
    event.listen(_model, "before_update", _before_save)
