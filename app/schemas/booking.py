"""Pydantic schemas for bookings and the actions shared with appointments."""

from datetime import datetime, timezone
from uuid import UUID
from pydantic import BaseModel, Field, field_validator
from typing import Optional


def to_naive_utc(value: datetime) -> datetime:
    """Store instants as naive UTC, like every other timestamp column."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class BookingCreate(BaseModel):
    """Schema for creating a booking on a service without appointment slots."""
    service_id: UUID
    booking_date: datetime
    down_payment: float = Field(..., ge=0)
    user_notes: Optional[str] = Field(None, max_length=500)

    @field_validator("booking_date")
    @classmethod
    def normalize_booking_date(cls, v: datetime) -> datetime:
        return to_naive_utc(v)


class CancelRequest(BaseModel):
    """Reason attached to a cancellation or rejection."""
    reason: Optional[str] = Field(None, max_length=500)


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)


class BookingOut(BaseModel):
    """Schema for returning booking details (either channel)."""
    id: UUID
    user_id: UUID
    service_id: Optional[UUID] = None
    provider_id: Optional[UUID] = None
    employee_service_id: Optional[UUID] = None
    business_owner_id: Optional[UUID] = None
    booking_date: datetime
    service_snapshot: dict
    total_amount: float
    down_payment: float
    platform_fee: float = 0
    owner_payout: float = 0
    due_amount: float = 0
    remaining_amount: float
    payment_status: str
    payment_intent_status: Optional[str] = None
    checkout_session_id: Optional[str] = None
    checkout_session_url: Optional[str] = None
    due_payment_intent_status: Optional[str] = None
    due_requested_at: Optional[datetime] = None
    due_paid_at: Optional[datetime] = None
    offline_paid_at: Optional[datetime] = None
    paid_via: Optional[str] = None
    booking_status: str
    user_notes: Optional[str] = None
    provider_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CheckoutOut(BaseModel):
    session_id: Optional[str] = None
    session_url: Optional[str] = None


class PaymentIntentOut(BaseModel):
    payment_intent_id: str
    client_secret: Optional[str] = None
    amount: float
    status: Optional[str] = None
