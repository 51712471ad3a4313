"""The two booking channels that share the lifecycle and payment engine.

A provider sells their own services; a business owner sells services
performed by an employee. Everything that differs between them (tables,
ownership column, the calendar a slot occupies, Stripe metadata keys) is
captured here so services and routers stay channel-agnostic.
"""

from dataclasses import dataclass
from typing import Any

from app.models.appointment import Appointment, BusinessOwnerAppointment
from app.models.booking import Booking, BusinessOwnerBooking
from app.models.service import Service, EmployeeService


@dataclass(frozen=True)
class Channel:
    name: str
    booking_model: Any
    appointment_model: Any
    service_model: Any
    owner_field: str
    service_field: str
    booking_metadata_key: str
    appointment_metadata_key: str
    owner_metadata_key: str
    owner_role: str

    def owner_id_of(self, record):
        return getattr(record, self.owner_field)

    def service_id_of(self, record):
        return getattr(record, self.service_field)

    def slot_owner_for(self, service):
        """Calendar key an appointment on ``service`` occupies."""
        if self.name == "provider":
            return service.provider_id
        return service.id


PROVIDER = Channel(
    name="provider",
    booking_model=Booking,
    appointment_model=Appointment,
    service_model=Service,
    owner_field="provider_id",
    service_field="service_id",
    booking_metadata_key="bookingId",
    appointment_metadata_key="appointmentId",
    owner_metadata_key="providerId",
    owner_role="provider",
)

BUSINESS_OWNER = Channel(
    name="business_owner",
    booking_model=BusinessOwnerBooking,
    appointment_model=BusinessOwnerAppointment,
    service_model=EmployeeService,
    owner_field="business_owner_id",
    service_field="employee_service_id",
    booking_metadata_key="businessOwnerBookingId",
    appointment_metadata_key="businessOwnerAppointmentId",
    owner_metadata_key="businessOwnerId",
    owner_role="business_owner",
)

CHANNELS = (PROVIDER, BUSINESS_OWNER)


def channel_for_model(model) -> Channel:
    for channel in CHANNELS:
        if model in (channel.booking_model, channel.appointment_model):
            return channel
    raise LookupError(f"No channel for {model!r}")
