"""Event ticketing models."""

from sqlalchemy import Column, String, DateTime, Float, Integer, Boolean, ForeignKey, CheckConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.types import JSON
import uuid
from datetime import datetime
import enum
from app.core.database import Base


class EventStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class TicketPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class EventManager(Base):
    __tablename__ = "event_managers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    organization_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("tickets_sold >= 0", name="ck_events_tickets_sold_non_negative"),
        CheckConstraint("tickets_sold <= maximum_number_of_tickets", name="ck_events_tickets_sold_cap"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_manager_id = Column(UUID(as_uuid=True), ForeignKey("event_managers.id", ondelete="CASCADE"), nullable=False, index=True)
    event_name = Column(String(200), nullable=False)
    maximum_number_of_tickets = Column(Integer, nullable=False)
    tickets_sold = Column(Integer, nullable=False, default=0)
    ticket_price = Column(Float, nullable=False, default=0)
    ticket_sales_start = Column(DateTime, nullable=True)
    ticket_sales_end = Column(DateTime, nullable=True)
    event_start = Column(DateTime, nullable=True)
    event_end = Column(DateTime, nullable=True)
    status = Column(String, nullable=False, default=EventStatus.DRAFT.value, index=True)
    confirmation_code_prefix = Column(String(10), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def tickets_available(self) -> int:
        return max((self.maximum_number_of_tickets or 0) - (self.tickets_sold or 0), 0)


class EventTicketPurchase(Base):
    __tablename__ = "event_ticket_purchases"
    __table_args__ = (
        CheckConstraint("quantity >= 1 AND quantity <= 10", name="ck_ticket_purchases_quantity"),
        Index("ix_ticket_purchases_user_created", "user_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_manager_id = Column(UUID(as_uuid=True), ForeignKey("event_managers.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    ticket_owners = Column(JSON, nullable=False, default=list)
    ticket_price = Column(Float, nullable=False)
    total_amount = Column(Float, nullable=False)
    platform_fee = Column(Float, nullable=False, default=0)
    event_manager_payout = Column(Float, nullable=False, default=0)
    payment_intent_id = Column(String, nullable=True, index=True)
    payment_intent_status = Column(String, nullable=True)
    payment_status = Column(String, nullable=False, default=TicketPaymentStatus.PENDING.value, index=True)
    paid_at = Column(DateTime, nullable=True)
    tickets_credited = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    kind = "ticket purchase"
