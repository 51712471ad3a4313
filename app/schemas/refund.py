"""Pydantic schemas for admin refunds."""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field
from typing import Literal, Optional


class RefundCreate(BaseModel):
    source_model: Literal[
        "Booking", "BusinessOwnerBooking", "Appointment", "BusinessOwnerAppointment", "EventTicketPurchase"
    ]
    source_id: UUID
    source_payment_field: Literal["payment_intent_id", "due_payment_intent_id"] = "payment_intent_id"
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=100)
    note: Optional[str] = Field(None, max_length=1000)


class RefundLogOut(BaseModel):
    id: UUID
    payment_intent_id: str
    refund_id: Optional[str] = None
    source_model: str
    source_id: UUID
    source_payment_field: str
    amount: float
    currency: str
    status: str
    reason: Optional[str] = None
    note: Optional[str] = None
    stripe_error: Optional[str] = None
    details: Optional[dict] = None
    refunded_by_admin_id: Optional[UUID] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
