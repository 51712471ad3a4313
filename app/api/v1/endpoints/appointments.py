"""Customer-facing appointment endpoints.

Mounted once per channel: /api/appointments and
/api/business-owner-appointments.
"""

from datetime import date
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.api.v1.responses import ok
from app.core.database import get_db
from app.core.deps import get_current_user
from app.models.user import User
from app.schemas.appointment import AppointmentCreate, AppointmentOut, AvailableSlotsResponse, RescheduleRequest
from app.schemas.booking import CancelRequest, ReviewCreate
from app.services import appointments as appointment_service
from app.services import bookings as booking_service
from app.services import payments
from app.services.channels import Channel
from app.services.lifecycle import USER

logger = logging.getLogger(__name__)


def build_router(channel: Channel) -> APIRouter:
    router = APIRouter()
    model = channel.appointment_model

    async def load_own_appointment(
        appointment_id: UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        return await booking_service.get_owned(db, model, appointment_id, "user_id", current_user.id)

    # ========================================================================
    # AVAILABILITY
    # ========================================================================

    @router.get("/available-slots/{service_id}")
    async def get_available_slots(
        service_id: UUID,
        day: date = Query(..., alias="date"),
        db: AsyncSession = Depends(get_db),
    ):
        """Slot templates for the service and the intervals already booked on ``date``."""
        availability = await appointment_service.available_slots(db, channel, service_id, day)
        return ok(AvailableSlotsResponse(**availability))

    # ========================================================================
    # CREATE & READ
    # ========================================================================

    @router.post("", status_code=201)
    async def create_appointment(
        payload: AppointmentCreate,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        appointment = await appointment_service.create_appointment(
            db,
            channel,
            current_user,
            service_id=payload.service_id,
            appointment_date=payload.appointment_date,
            start_time=payload.time_slot.start_time,
            end_time=payload.time_slot.end_time,
            slot_id=payload.slot_id,
            user_notes=payload.user_notes,
        )
        return ok(AppointmentOut.model_validate(appointment), "Appointment created successfully")

    @router.get("/my-appointments")
    async def list_my_appointments(
        status: str | None = None,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        query = select(model).where(model.user_id == current_user.id)
        if status:
            query = query.where(model.appointment_status == status)
        result = await db.execute(query.order_by(model.appointment_date.desc(), model.start_time.desc()))
        return ok([AppointmentOut.model_validate(a) for a in result.scalars().all()])

    @router.get("/{appointment_id}")
    async def get_appointment(appointment=Depends(load_own_appointment)):
        return ok(AppointmentOut.model_validate(appointment))

    @router.get("/{appointment_id}/payment-status")
    async def get_payment_status(appointment=Depends(load_own_appointment)):
        return ok(payments.payment_summary(appointment))

    # ========================================================================
    # USER ACTIONS
    # ========================================================================

    @router.patch("/{appointment_id}/cancel")
    async def cancel_appointment(
        payload: CancelRequest | None = None,
        appointment=Depends(load_own_appointment),
        db: AsyncSession = Depends(get_db),
    ):
        appointment = await booking_service.cancel(db, channel, appointment, payload.reason if payload else None)
        return ok(AppointmentOut.model_validate(appointment), "Appointment cancelled successfully")

    @router.patch("/{appointment_id}/reschedule")
    async def reschedule_appointment(
        payload: RescheduleRequest,
        appointment=Depends(load_own_appointment),
        db: AsyncSession = Depends(get_db),
    ):
        """Move the appointment; it goes back to pending for the owner to confirm."""
        appointment = await appointment_service.reschedule(
            db,
            channel,
            appointment,
            USER,
            payload.appointment_date,
            payload.time_slot.start_time,
            payload.time_slot.end_time,
            payload.note,
        )
        return ok(AppointmentOut.model_validate(appointment), "Appointment rescheduled successfully")

    @router.post("/{appointment_id}/review")
    async def review_appointment(
        payload: ReviewCreate,
        appointment=Depends(load_own_appointment),
        db: AsyncSession = Depends(get_db),
    ):
        appointment = await booking_service.review(db, channel, appointment, payload.rating, payload.comment)
        return ok(AppointmentOut.model_validate(appointment), "Review submitted successfully")

    return router
