"""Pydantic schemas for Appointments."""

from datetime import datetime, date
from uuid import UUID
from pydantic import BaseModel, Field
from typing import Optional


class TimeSlotIn(BaseModel):
    """Wall-clock interval, "HH:MM" strings."""
    start_time: str
    end_time: str


class AppointmentCreate(BaseModel):
    """Schema for creating an appointment on an appointment-enabled service."""
    service_id: UUID
    appointment_date: date
    time_slot: TimeSlotIn
    slot_id: Optional[str] = None
    user_notes: Optional[str] = Field(None, max_length=500)


class RescheduleRequest(BaseModel):
    appointment_date: date
    time_slot: TimeSlotIn
    note: Optional[str] = Field(None, max_length=300)


class SelectedSlotOut(BaseModel):
    slot_id: str
    duration: int
    duration_unit: str
    price: float


class AppointmentOut(BaseModel):
    """Schema for returning appointment details (either channel)."""
    id: UUID
    user_id: UUID
    service_id: Optional[UUID] = None
    provider_id: Optional[UUID] = None
    employee_service_id: Optional[UUID] = None
    business_owner_id: Optional[UUID] = None
    appointment_date: date
    start_time: str
    end_time: str
    selected_slot: SelectedSlotOut
    service_snapshot: dict
    total_amount: float
    down_payment: float
    platform_fee: float = 0
    owner_payout: float = 0
    remaining_amount: float
    payment_status: str
    payment_intent_status: Optional[str] = None
    checkout_session_id: Optional[str] = None
    checkout_session_url: Optional[str] = None
    paid_via: Optional[str] = None
    paid_at: Optional[datetime] = None
    appointment_status: str
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


class AvailableSlotsResponse(BaseModel):
    """Slot templates of a service plus the intervals already taken on a date."""
    service_id: UUID
    date: date
    slots: list[dict]
    booked: list[TimeSlotIn]
