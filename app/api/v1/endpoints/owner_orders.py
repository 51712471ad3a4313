"""Owner-side endpoints: manage incoming bookings and appointments, dashboards.

Mounted for providers under /api/providers and for business owners under
/api/business-owners. ``get_owner`` resolves the caller's owner profile.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.api.v1.responses import ok
from app.core.database import get_db
from app.schemas.appointment import AppointmentOut, RescheduleRequest
from app.schemas.booking import BookingOut, CancelRequest, CheckoutOut, PaymentIntentOut
from app.services import appointments as appointment_service
from app.services import bookings as booking_service
from app.services import stats as stats_service
from app.services.channels import Channel
from app.services.lifecycle import OWNER

logger = logging.getLogger(__name__)


def _checkout(session) -> CheckoutOut:
    if session is None:
        return CheckoutOut()
    return CheckoutOut(session_id=session.id, session_url=session.url)


def build_router(channel: Channel, get_owner) -> APIRouter:
    router = APIRouter()
    booking_model = channel.booking_model
    appointment_model = channel.appointment_model

    async def load_booking(booking_id: UUID, owner=Depends(get_owner), db: AsyncSession = Depends(get_db)):
        return await booking_service.get_owned(db, booking_model, booking_id, channel.owner_field, owner.id)

    async def load_appointment(appointment_id: UUID, owner=Depends(get_owner), db: AsyncSession = Depends(get_db)):
        return await booking_service.get_owned(db, appointment_model, appointment_id, channel.owner_field, owner.id)

    # ========================================================================
    # BOOKINGS
    # ========================================================================

    @router.get("/bookings")
    async def list_bookings(
        status: str | None = None,
        owner=Depends(get_owner),
        db: AsyncSession = Depends(get_db),
    ):
        query = select(booking_model).where(getattr(booking_model, channel.owner_field) == owner.id)
        if status:
            query = query.where(booking_model.booking_status == status)
        result = await db.execute(query.order_by(booking_model.created_at.desc()))
        return ok([BookingOut.model_validate(b) for b in result.scalars().all()])

    @router.get("/bookings/{booking_id}")
    async def get_booking(booking=Depends(load_booking)):
        return ok(BookingOut.model_validate(booking))

    @router.patch("/bookings/{booking_id}/accept")
    async def accept_booking(booking=Depends(load_booking), db: AsyncSession = Depends(get_db)):
        """Confirm the booking and open the down-payment checkout."""
        booking, session = await booking_service.accept(db, channel, booking)
        return ok(
            {"booking": BookingOut.model_validate(booking), "checkout": _checkout(session)},
            "Booking accepted successfully",
        )

    @router.patch("/bookings/{booking_id}/reject")
    async def reject_booking(
        payload: CancelRequest | None = None,
        booking=Depends(load_booking),
        db: AsyncSession = Depends(get_db),
    ):
        booking = await booking_service.reject(db, channel, booking, payload.reason if payload else None)
        return ok(BookingOut.model_validate(booking), "Booking rejected")

    @router.patch("/bookings/{booking_id}/start")
    async def start_booking(booking=Depends(load_booking), db: AsyncSession = Depends(get_db)):
        booking = await booking_service.start(db, channel, booking)
        return ok(BookingOut.model_validate(booking), "Booking started")

    @router.patch("/bookings/{booking_id}/complete")
    async def complete_booking(booking=Depends(load_booking), db: AsyncSession = Depends(get_db)):
        booking = await booking_service.complete(db, channel, booking)
        return ok(BookingOut.model_validate(booking), "Booking completed")

    @router.post("/bookings/{booking_id}/request-due")
    async def request_due_payment(booking=Depends(load_booking), db: AsyncSession = Depends(get_db)):
        """Ask the customer for the remaining balance of a completed booking."""
        booking, intent = await booking_service.request_due_payment(db, channel, booking)
        return ok(
            {
                "booking": BookingOut.model_validate(booking),
                "payment": PaymentIntentOut(
                    payment_intent_id=intent.id,
                    client_secret=intent.client_secret,
                    amount=booking.due_amount,
                    status=intent.status,
                ),
            },
            "Due payment requested",
        )

    @router.post("/bookings/{booking_id}/mark-offline-paid")
    async def mark_offline_paid(booking=Depends(load_booking), db: AsyncSession = Depends(get_db)):
        booking = await booking_service.mark_offline_paid(db, channel, booking)
        return ok(BookingOut.model_validate(booking), "Booking marked as paid offline")

    # ========================================================================
    # APPOINTMENTS
    # ========================================================================

    @router.get("/appointments")
    async def list_appointments(
        status: str | None = None,
        owner=Depends(get_owner),
        db: AsyncSession = Depends(get_db),
    ):
        query = select(appointment_model).where(getattr(appointment_model, channel.owner_field) == owner.id)
        if status:
            query = query.where(appointment_model.appointment_status == status)
        result = await db.execute(
            query.order_by(appointment_model.appointment_date.desc(), appointment_model.start_time.desc())
        )
        return ok([AppointmentOut.model_validate(a) for a in result.scalars().all()])

    @router.get("/appointments/{appointment_id}")
    async def get_appointment(appointment=Depends(load_appointment)):
        return ok(AppointmentOut.model_validate(appointment))

    @router.patch("/appointments/{appointment_id}/accept")
    async def accept_appointment(appointment=Depends(load_appointment), db: AsyncSession = Depends(get_db)):
        """Confirm the appointment and open the full-payment checkout."""
        appointment, session = await booking_service.accept(db, channel, appointment)
        return ok(
            {"appointment": AppointmentOut.model_validate(appointment), "checkout": _checkout(session)},
            "Appointment accepted successfully",
        )

    @router.patch("/appointments/{appointment_id}/reject")
    async def reject_appointment(
        payload: CancelRequest | None = None,
        appointment=Depends(load_appointment),
        db: AsyncSession = Depends(get_db),
    ):
        appointment = await booking_service.reject(db, channel, appointment, payload.reason if payload else None)
        return ok(AppointmentOut.model_validate(appointment), "Appointment rejected")

    @router.patch("/appointments/{appointment_id}/start")
    async def start_appointment(appointment=Depends(load_appointment), db: AsyncSession = Depends(get_db)):
        appointment = await booking_service.start(db, channel, appointment)
        return ok(AppointmentOut.model_validate(appointment), "Appointment started")

    @router.patch("/appointments/{appointment_id}/complete")
    async def complete_appointment(appointment=Depends(load_appointment), db: AsyncSession = Depends(get_db)):
        appointment = await booking_service.complete(db, channel, appointment)
        return ok(AppointmentOut.model_validate(appointment), "Appointment completed")

    @router.patch("/appointments/{appointment_id}/no-show")
    async def no_show_appointment(appointment=Depends(load_appointment), db: AsyncSession = Depends(get_db)):
        appointment = await booking_service.mark_no_show(db, channel, appointment)
        return ok(AppointmentOut.model_validate(appointment), "Appointment marked as no-show")

    @router.patch("/appointments/{appointment_id}/reschedule")
    async def reschedule_appointment(
        payload: RescheduleRequest,
        appointment=Depends(load_appointment),
        db: AsyncSession = Depends(get_db),
    ):
        appointment = await appointment_service.reschedule(
            db,
            channel,
            appointment,
            OWNER,
            payload.appointment_date,
            payload.time_slot.start_time,
            payload.time_slot.end_time,
            payload.note,
        )
        return ok(AppointmentOut.model_validate(appointment), "Appointment rescheduled successfully")

    # ========================================================================
    # DASHBOARD
    # ========================================================================

    @router.get("/stats")
    async def get_stats(owner=Depends(get_owner), db: AsyncSession = Depends(get_db)):
        return ok(await stats_service.owner_stats(db, channel, owner.id))

    @router.get("/upcoming")
    async def get_upcoming(
        limit: int = Query(20, ge=1, le=100),
        owner=Depends(get_owner),
        db: AsyncSession = Depends(get_db),
    ):
        return ok(await stats_service.upcoming_schedule(db, channel, owner.id, limit))

    @router.get("/orders")
    async def get_orders(
        status: str | None = None,
        limit: int = Query(20, ge=1, le=100),
        offset: int = Query(0, ge=0),
        owner=Depends(get_owner),
        db: AsyncSession = Depends(get_db),
    ):
        return ok(await stats_service.orders_feed(db, channel, owner.id, status, limit, offset))

    @router.get("/activities")
    async def get_activities(
        range_filter: str = Query("all", alias="range"),
        status: str = Query("all"),
        limit: int = Query(20, ge=1, le=100),
        owner=Depends(get_owner),
        db: AsyncSession = Depends(get_db),
    ):
        return ok(await stats_service.activity_feed(db, channel, owner.id, range_filter, status, limit))

    return router
