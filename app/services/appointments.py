"""Appointment use cases: creation, rescheduling and the availability view."""

import logging
from datetime import date
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import IllegalTransition, InvariantViolation, ValidationFailed
from app.models.appointment import ACTIVE_APPOINTMENT_STATUSES, AppointmentStatus
from app.models.user import User
from app.services.bookings import get_active_service
from app.services.channels import Channel
from app.services.lifecycle import OWNER, RESCHEDULABLE_STATUSES
from app.services.slot_conflicts import reserve_slot
from app.services.snapshots import appointment_snapshot, selected_slot_snapshot
from app.services.timeslots import TimeSlot, combine, slot_duration_minutes, utcnow

logger = logging.getLogger(__name__)

NOTE_LIMITS = {"provider_notes": 1000, "user_notes": 500}


def _append_note(record, field: str, note: str) -> None:
    existing = getattr(record, field)
    combined = f"{existing}\n{note}" if existing else note
    limit = NOTE_LIMITS[field]
    setattr(record, field, combined[-limit:])


def _ensure_future(appointment_date: date, slot: TimeSlot) -> None:
    if combine(appointment_date, slot.start_time) <= utcnow():
        raise InvariantViolation("Appointment must start in the future")


def _pick_slot(service, slot_id: Optional[str], slot: TimeSlot) -> dict:
    if slot_id:
        return selected_slot_snapshot(service, slot_id)

    templates = service.appointment_slots or []
    if len(templates) == 1:
        return selected_slot_snapshot(service, templates[0].get("slot_id"))

    length = slot.end_minutes - slot.start_minutes
    for template in templates:
        if slot_duration_minutes(template) == length:
            return selected_slot_snapshot(service, template.get("slot_id"))
    raise ValidationFailed("Please choose one of the service's appointment slots")


async def create_appointment(
    db: AsyncSession,
    channel: Channel,
    user: User,
    service_id,
    appointment_date: date,
    start_time: str,
    end_time: str,
    slot_id: Optional[str] = None,
    user_notes: Optional[str] = None,
):
    service = await get_active_service(db, channel, service_id)
    if not service.appointment_enabled:
        raise ValidationFailed("This service does not accept appointments. Please create a booking instead.")

    slot = TimeSlot(start_time, end_time)
    _ensure_future(appointment_date, slot)
    selected = _pick_slot(service, slot_id, slot)

    appointment = channel.appointment_model(
        user_id=user.id,
        slot_owner_id=channel.slot_owner_for(service),
        selected_slot=selected,
        service_snapshot=appointment_snapshot(service),
        total_amount=selected["price"],
        down_payment=0,
        user_notes=user_notes,
    )
    setattr(appointment, channel.service_field, service.id)
    setattr(appointment, channel.owner_field, getattr(service, channel.owner_field))

    await reserve_slot(db, appointment, appointment_date, slot)

    service.bookings = (service.bookings or 0) + 1
    await db.commit()
    await db.refresh(appointment)

    logger.info(
        "Appointment %s created by user %s for %s %s-%s",
        appointment.id, user.id, appointment_date, slot.start_time, slot.end_time,
    )
    return appointment


async def reschedule(
    db: AsyncSession,
    channel: Channel,
    appointment,
    actor: str,
    appointment_date: date,
    start_time: str,
    end_time: str,
    note: Optional[str] = None,
):
    """Move an appointment to a new date/time if the owner's calendar allows it.

    An owner keeps the current status and leaves an audit line in
    provider_notes. A user reschedule sends the appointment back to pending
    for the owner to confirm again.
    """
    if appointment.appointment_status not in RESCHEDULABLE_STATUSES:
        raise IllegalTransition("reschedule", appointment.appointment_status, "appointment")
    slot = TimeSlot(start_time, end_time)
    _ensure_future(appointment_date, slot)
    previous = f"{appointment.appointment_date.isoformat()} {appointment.start_time}-{appointment.end_time}"

    await reserve_slot(db, appointment, appointment_date, slot, exclude_id=appointment.id)

    current = f"{appointment_date.isoformat()} {slot.start_time}-{slot.end_time}"
    if actor == OWNER:
        line = f"Rescheduled by provider from {previous} to {current}"
        if note:
            line = f"{line}: {note}"
        _append_note(appointment, "provider_notes", line)
    else:
        appointment.appointment_status = AppointmentStatus.PENDING.value
        line = f"Rescheduled by user from {previous} to {current}"
        if note:
            line = f"{line}: {note}"
        _append_note(appointment, "user_notes", line)

    await db.commit()
    await db.refresh(appointment)
    logger.info("Appointment %s rescheduled by %s: %s -> %s", appointment.id, actor, previous, current)
    return appointment


async def available_slots(db: AsyncSession, channel: Channel, service_id, day: date) -> dict:
    """Slot templates of a service together with the intervals already taken that day."""
    service = await get_active_service(db, channel, service_id)
    if not service.appointment_enabled:
        raise ValidationFailed("This service does not accept appointments")

    model = channel.appointment_model
    result = await db.execute(
        select(model.start_time, model.end_time)
        .where(
            model.slot_owner_id == channel.slot_owner_for(service),
            model.appointment_date == day,
            model.appointment_status.in_(ACTIVE_APPOINTMENT_STATUSES),
        )
        .order_by(model.start_time)
    )
    booked = [{"start_time": row.start_time, "end_time": row.end_time} for row in result.all()]

    return {
        "service_id": service.id,
        "date": day,
        "slots": list(service.appointment_slots or []),
        "booked": booked,
    }
