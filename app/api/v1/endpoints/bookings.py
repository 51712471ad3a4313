"""Customer-facing booking endpoints.

``build_router`` is mounted once per channel: provider services under
/api/bookings and business services under /api/business-owner-bookings.
"""

from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.api.v1.responses import ok
from app.core.database import get_db
from app.core.deps import get_current_user
from app.models.user import User
from app.schemas.booking import BookingCreate, BookingOut, CancelRequest, PaymentIntentOut, ReviewCreate
from app.services import bookings as booking_service
from app.services import payments
from app.services.channels import Channel

logger = logging.getLogger(__name__)


def build_router(channel: Channel) -> APIRouter:
    router = APIRouter()
    model = channel.booking_model

    async def load_own_booking(
        booking_id: UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        return await booking_service.get_owned(db, model, booking_id, "user_id", current_user.id)

    # ========================================================================
    # CREATE & READ
    # ========================================================================

    @router.post("", status_code=201)
    async def create_booking(
        payload: BookingCreate,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        """Request a booking; the owner accepts it before any payment is taken."""
        booking = await booking_service.create_booking(
            db,
            channel,
            current_user,
            service_id=payload.service_id,
            booking_date=payload.booking_date,
            down_payment=payload.down_payment,
            user_notes=payload.user_notes,
        )
        return ok(BookingOut.model_validate(booking), "Booking created successfully")

    @router.get("/my-bookings")
    async def list_my_bookings(
        status: str | None = None,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        query = select(model).where(model.user_id == current_user.id)
        if status:
            query = query.where(model.booking_status == status)
        result = await db.execute(query.order_by(model.created_at.desc()))
        return ok([BookingOut.model_validate(b) for b in result.scalars().all()])

    @router.get("/{booking_id}")
    async def get_booking(booking=Depends(load_own_booking)):
        return ok(BookingOut.model_validate(booking))

    # ========================================================================
    # USER ACTIONS
    # ========================================================================

    @router.patch("/{booking_id}/cancel")
    async def cancel_booking(
        payload: CancelRequest | None = None,
        booking=Depends(load_own_booking),
        db: AsyncSession = Depends(get_db),
    ):
        booking = await booking_service.cancel(db, channel, booking, payload.reason if payload else None)
        return ok(BookingOut.model_validate(booking), "Booking cancelled successfully")

    @router.post("/{booking_id}/review")
    async def review_booking(
        payload: ReviewCreate,
        booking=Depends(load_own_booking),
        db: AsyncSession = Depends(get_db),
    ):
        booking = await booking_service.review(db, channel, booking, payload.rating, payload.comment)
        return ok(BookingOut.model_validate(booking), "Review submitted successfully")

    # ========================================================================
    # PAYMENTS
    # ========================================================================

    @router.get("/{booking_id}/payment-status")
    async def get_payment_status(booking=Depends(load_own_booking)):
        return ok(payments.payment_summary(booking))

    @router.get("/{booking_id}/due/intent")
    async def get_due_intent(booking=Depends(load_own_booking)):
        """Client secret of the balance payment the owner requested."""
        intent = payments.get_due_payment_intent(booking)
        return ok(PaymentIntentOut(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount=booking.due_amount,
            status=intent.status,
        ))

    @router.post("/{booking_id}/due/confirm")
    async def confirm_due_payment(
        booking=Depends(load_own_booking),
        db: AsyncSession = Depends(get_db),
    ):
        booking, status = await booking_service.confirm_due_payment(db, channel, booking)
        message = "Due payment completed" if status == "succeeded" else f"Due payment is {status}"
        return ok(BookingOut.model_validate(booking), message)

    return router
