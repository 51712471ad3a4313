"""Service offerings: provider-owned services and employee-owned business services."""

from sqlalchemy import Column, String, DateTime, Integer, Float, Boolean, Text, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.types import JSON
import uuid
from datetime import datetime
from typing import Optional
from app.core.database import Base

DURATION_UNITS = ("minutes", "hours")


class ServiceOfferingMixin:
    """Columns and rules shared by both service flavors.

    ``appointment_slots`` is an ordered list of slot templates:
    ``{"slot_id", "duration", "duration_unit", "price"}``.
    """

    headline = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    service_photo = Column(String, nullable=True)
    base_price = Column(Float, nullable=False, default=0)
    appointment_enabled = Column(Boolean, nullable=False, default=False)
    appointment_slots = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    bookings = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def find_slot(self, slot_id: str) -> Optional[dict]:
        for slot in self.appointment_slots or []:
            if str(slot.get("slot_id")) == str(slot_id):
                return slot
        return None

    def offering_errors(self) -> list[str]:
        """Return the reasons this offering is inconsistent (empty when valid)."""
        errors = []
        slots = self.appointment_slots or []
        if self.appointment_enabled:
            if (self.base_price or 0) != 0:
                errors.append("base_price must be 0 when appointments are enabled")
            if not slots:
                errors.append("at least one appointment slot is required")
        else:
            if slots:
                errors.append("appointment slots are only allowed when appointments are enabled")
            if (self.base_price or 0) <= 0:
                errors.append("base_price must be greater than 0")
        for slot in slots:
            if slot.get("duration_unit") not in DURATION_UNITS:
                errors.append(f"slot {slot.get('slot_id')}: invalid duration unit")
            if (slot.get("price") or 0) < 0:
                errors.append(f"slot {slot.get('slot_id')}: price cannot be negative")
        return errors


class Service(ServiceOfferingMixin, Base):
    __tablename__ = "services"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_id = Column(UUID(as_uuid=True), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String, nullable=True)


class EmployeeService(ServiceOfferingMixin, Base):
    __tablename__ = "employee_services"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_owner_id = Column(UUID(as_uuid=True), ForeignKey("business_owners.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    categories = Column(JSON, nullable=False, default=list)
