"""Pydantic schemas for ticket purchases."""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field
from typing import Optional


class TicketOwner(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = None
    phone: Optional[str] = None


class TicketPurchaseCreate(BaseModel):
    quantity: int = Field(..., ge=1, le=10)
    ticket_owners: list[TicketOwner]


class TicketPurchaseOut(BaseModel):
    id: UUID
    event_id: UUID
    user_id: UUID
    event_manager_id: UUID
    quantity: int
    ticket_owners: list[dict]
    ticket_price: float
    total_amount: float
    platform_fee: float
    event_manager_payout: float
    payment_intent_id: Optional[str] = None
    payment_intent_status: Optional[str] = None
    payment_status: str
    paid_at: Optional[datetime] = None
    tickets_credited: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
