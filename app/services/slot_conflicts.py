"""Detect and prevent overlapping appointments on an owner's calendar."""

import logging
from datetime import date
from typing import Optional
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import SlotConflict
from app.models.appointment import ACTIVE_APPOINTMENT_STATUSES
from app.services.timeslots import TimeSlot

logger = logging.getLogger(__name__)


async def find_conflict(
    db: AsyncSession,
    model,
    slot_owner_id,
    appointment_date: date,
    slot: TimeSlot,
    exclude_id=None,
):
    """Return the first active appointment overlapping ``slot``, or None."""
    query = select(model).where(
        model.slot_owner_id == slot_owner_id,
        model.appointment_date == appointment_date,
        model.appointment_status.in_(ACTIVE_APPOINTMENT_STATUSES),
    )
    if exclude_id is not None:
        query = query.where(model.id != exclude_id)

    result = await db.execute(query)
    for existing in result.scalars().all():
        if slot.overlaps(existing.start_time, existing.end_time):
            return existing
    return None


async def has_conflict(db, model, slot_owner_id, appointment_date, slot, exclude_id=None) -> bool:
    return await find_conflict(db, model, slot_owner_id, appointment_date, slot, exclude_id) is not None


async def lock_calendar_day(db: AsyncSession, slot_owner_id, appointment_date: date) -> None:
    """Serialize reservations for one owner and day until the transaction ends.

    PostgreSQL only; other backends rely on the partial unique index.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
        {"key": f"slot:{slot_owner_id}:{appointment_date.isoformat()}"},
    )


async def reserve_slot(
    db: AsyncSession,
    appointment,
    appointment_date: date,
    slot: TimeSlot,
    exclude_id: Optional[object] = None,
) -> None:
    """Place ``appointment`` on ``slot`` if the calendar is free, and flush.

    Raises ``SlotConflict`` when another pending/confirmed appointment of the
    same owner overlaps. The appointment is left untouched in that case.
    """
    model = type(appointment)
    await lock_calendar_day(db, appointment.slot_owner_id, appointment_date)

    conflict = await find_conflict(db, model, appointment.slot_owner_id, appointment_date, slot, exclude_id)
    if conflict is not None:
        logger.info(
            "Slot conflict for owner %s on %s %s-%s (existing %s %s-%s)",
            appointment.slot_owner_id, appointment_date, slot.start_time, slot.end_time,
            conflict.id, conflict.start_time, conflict.end_time,
        )
        raise SlotConflict("This time slot is already booked. Please choose another time.")

    appointment.appointment_date = appointment_date
    appointment.start_time = slot.start_time
    appointment.end_time = slot.end_time
    db.add(appointment)

    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        logger.info("Concurrent reservation lost for owner %s on %s %s: %s",
                    appointment.slot_owner_id, appointment_date, slot.start_time, e.orig)
        raise SlotConflict("This time slot is already booked. Please choose another time.")
