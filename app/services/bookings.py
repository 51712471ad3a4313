"""Booking use cases and the owner/user actions shared with appointments.

Accept, reject, start, complete, no-show, cancel and review work the same
way for bookings and appointments of either channel; the record's lifecycle
table decides what is allowed.
"""

import logging
from datetime import datetime
from typing import Optional
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import InvariantViolation, NotAuthorized, NotFound, ValidationFailed, IllegalTransition
from app.core.money import round_money
from app.models.booking import check_down_payment, derive_booking_payment
from app.models.provider import Provider
from app.models.user import User
from app.services import payments
from app.services.channels import Channel, PROVIDER
from app.services.lifecycle import APPOINTMENT_LIFECYCLE, BOOKING_LIFECYCLE, OWNER, USER
from app.services.snapshots import booking_snapshot
from app.services.timeslots import utcnow

logger = logging.getLogger(__name__)


def lifecycle_for(record):
    return BOOKING_LIFECYCLE if record.kind == "booking" else APPOINTMENT_LIFECYCLE


async def get_active_service(db: AsyncSession, channel: Channel, service_id):
    service = await db.get(channel.service_model, service_id)
    if service is None or not service.is_active:
        raise NotFound("Service not found or inactive")
    return service


async def get_owned(db: AsyncSession, model, record_id, owner_field: str, owner_id):
    """Load a record and check it belongs to ``owner_id`` through ``owner_field``."""
    record = await db.get(model, record_id)
    if record is None:
        raise NotFound(f"{model.kind.capitalize()} not found")
    if getattr(record, owner_field) != owner_id:
        raise NotAuthorized(f"You are not allowed to access this {model.kind}")
    return record


async def create_booking(
    db: AsyncSession,
    channel: Channel,
    user: User,
    service_id,
    booking_date: datetime,
    down_payment: float,
    user_notes: Optional[str] = None,
):
    service = await get_active_service(db, channel, service_id)
    if service.appointment_enabled:
        raise ValidationFailed("This service requires an appointment. Please use the appointment endpoint.")
    if booking_date <= utcnow():
        raise InvariantViolation("Booking date must be in the future")

    total = round_money(service.base_price)
    down_payment = round_money(down_payment)
    minimum = round_money(total * settings.BOOKING_MIN_DOWN_PAYMENT_RATE)
    if down_payment < minimum:
        raise ValidationFailed(
            f"Down payment must be at least {int(settings.BOOKING_MIN_DOWN_PAYMENT_RATE * 100)}% "
            f"of total amount (minimum: ${minimum:.2f})"
        )

    booking = channel.booking_model(
        user_id=user.id,
        booking_date=booking_date,
        service_snapshot=booking_snapshot(service),
        total_amount=total,
        down_payment=down_payment,
        user_notes=user_notes,
    )
    setattr(booking, channel.service_field, service.id)
    setattr(booking, channel.owner_field, getattr(service, channel.owner_field))

    # Same rules the flush hook applies, checked before the row joins the session.
    check_down_payment(booking)
    derive_booking_payment(booking)

    db.add(booking)
    service.bookings = (service.bookings or 0) + 1
    await db.commit()
    await db.refresh(booking)

    logger.info("Booking %s created by user %s for service %s", booking.id, user.id, service.id)
    return booking


# ============================================================================
# OWNER ACTIONS
# ============================================================================

async def accept(db: AsyncSession, channel: Channel, record):
    """Confirm a pending record and open its Stripe checkout.

    The checkout session is created first; if Stripe fails the record stays
    pending and the error propagates.
    """
    lifecycle = lifecycle_for(record)
    if not lifecycle.can(record, "accept"):
        raise IllegalTransition("accept", record.status, record.kind)

    session = payments.create_checkout(record, channel)
    lifecycle.apply(record, "accept", OWNER)
    await db.commit()
    await db.refresh(record)
    return record, session


async def reject(db: AsyncSession, channel: Channel, record, reason: Optional[str] = None):
    lifecycle_for(record).apply(record, "reject", OWNER, reason=reason or "Rejected by provider")
    await db.commit()

    payments.release_pending_payment(record)
    await db.commit()
    await db.refresh(record)
    return record


async def start(db: AsyncSession, channel: Channel, record):
    lifecycle_for(record).apply(record, "start", OWNER)
    await db.commit()
    await db.refresh(record)
    return record


async def complete(db: AsyncSession, channel: Channel, record):
    lifecycle_for(record).apply(record, "complete", OWNER)
    if channel is PROVIDER:
        await db.execute(
            update(Provider)
            .where(Provider.id == record.provider_id)
            .values(completed_jobs=Provider.completed_jobs + 1)
        )
    await db.commit()
    await db.refresh(record)
    return record


async def mark_no_show(db: AsyncSession, channel: Channel, record):
    lifecycle_for(record).apply(record, "no_show", OWNER)
    await db.commit()
    await db.refresh(record)
    return record


async def request_due_payment(db: AsyncSession, channel: Channel, booking):
    intent = payments.create_due_payment_intent(booking, channel)
    await db.commit()
    await db.refresh(booking)
    return booking, intent


async def mark_offline_paid(db: AsyncSession, channel: Channel, booking):
    payments.mark_offline_paid(booking)
    await db.commit()
    await db.refresh(booking)
    logger.info("Booking %s marked as paid offline", booking.id)
    return booking


# ============================================================================
# USER ACTIONS
# ============================================================================

async def cancel(db: AsyncSession, channel: Channel, record, reason: Optional[str] = None):
    """User cancellation. Captured payments are not refunded here; refunds go through admin."""
    lifecycle_for(record).apply(record, "cancel", USER, reason=reason or "Cancelled by user")
    await db.commit()
    await db.refresh(record)
    return record


async def confirm_due_payment(db: AsyncSession, channel: Channel, booking):
    status = payments.confirm_due_payment(booking)
    await db.commit()
    await db.refresh(booking)
    return booking, status


async def review(db: AsyncSession, channel: Channel, record, rating: int, comment: str):
    if record.status != "completed":
        raise ValidationFailed(f"You can only review completed {record.kind}s")
    if record.rating is not None:
        raise ValidationFailed(f"You have already reviewed this {record.kind}")
    if rating < 1 or rating > 5:
        raise ValidationFailed("Rating must be between 1 and 5")
    if not comment or not comment.strip():
        raise ValidationFailed("Review comment is required")

    record.rating = rating
    record.review = comment.strip()
    record.reviewed_at = utcnow()
    await db.flush()

    await refresh_ratings(db, channel, record)
    await db.commit()
    await db.refresh(record)
    return record


async def _rating_totals(db: AsyncSession, channel: Channel, column_name: str, value) -> tuple[float, int]:
    total, count = 0.0, 0
    for model in (channel.booking_model, channel.appointment_model):
        result = await db.execute(
            select(func.coalesce(func.sum(model.rating), 0), func.count(model.id)).where(
                getattr(model, column_name) == value,
                model.rating.is_not(None),
            )
        )
        rating_sum, rating_count = result.one()
        total += float(rating_sum or 0)
        count += int(rating_count or 0)
    return total, count


async def refresh_ratings(db: AsyncSession, channel: Channel, record) -> None:
    """Recompute the average rating of the reviewed service (and provider)."""
    service_id = channel.service_id_of(record)
    if service_id is not None:
        service = await db.get(channel.service_model, service_id)
        if service is not None:
            total, count = await _rating_totals(db, channel, channel.service_field, service_id)
            service.rating = round(total / count, 1) if count else 0
            service.total_reviews = count

    if channel is PROVIDER:
        provider = await db.get(Provider, record.provider_id)
        if provider is not None:
            total, count = await _rating_totals(db, channel, "provider_id", record.provider_id)
            provider.rating = round(total / count, 1) if count else 0
            provider.total_reviews = count
