"""Stripe payment orchestration for bookings and appointments.

Covers checkout sessions created on acceptance, due-payment intents after
completion, offline settlement, best-effort intent cancellation and the
monotone "payment received" updates shared by the webhook and the
user-facing confirm endpoint.

Functions here mutate the record they are given; committing is left to
the caller.
"""

import logging
import stripe
from typing import Optional

from app.core.config import settings
from app.core.exceptions import ConfigMissing, ExternalPaymentError, IllegalPaymentTransition
from app.core.money import platform_split, round_money, to_minor_units
from app.models.appointment import AppointmentPaymentStatus
from app.models.booking import BookingPaymentStatus, BookingStatus, PaidVia
from app.services.channels import Channel
from app.services.timeslots import utcnow

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_API_KEY

BOOKING_DOWN_PAYMENT = "booking_down_payment"
BOOKING_DUE_PAYMENT = "booking_due_payment"
APPOINTMENT_FULL_PAYMENT = "appointment_full_payment"

# Payment statuses a "paid" event may not overwrite.
FINAL_PAYMENT_STATUSES = ("completed", "offline_paid", "refunded")

# Intent statuses after which the intent can no longer be cancelled.
CLOSED_INTENT_STATUSES = ("succeeded", "canceled")


def _checkout_urls() -> tuple[str, str]:
    success_url = settings.STRIPE_CHECKOUT_SUCCESS_URL
    cancel_url = settings.STRIPE_CHECKOUT_CANCEL_URL
    if not success_url or not cancel_url:
        raise ConfigMissing("Stripe checkout success/cancel URLs are not configured")
    return success_url, cancel_url


def checkout_metadata(record, channel: Channel) -> dict:
    if record.kind == "booking":
        key, payment_type = channel.booking_metadata_key, BOOKING_DOWN_PAYMENT
    else:
        key, payment_type = channel.appointment_metadata_key, APPOINTMENT_FULL_PAYMENT
    return {
        key: str(record.id),
        "userId": str(record.user_id),
        channel.owner_metadata_key: str(channel.owner_id_of(record)),
        "type": payment_type,
    }


def create_checkout(record, channel: Channel):
    """Open a Stripe Checkout session for the amount due on acceptance.

    Bookings charge the down payment; appointments charge the full slot
    price. The record is only updated once Stripe has returned a session.
    """
    if record.payment_intent_status == "succeeded" or record.payment_status in FINAL_PAYMENT_STATUSES:
        logger.info("%s %s is already paid; skipping checkout", record.kind, record.id)
        return None

    amount = record.down_payment if record.kind == "booking" else record.total_amount
    if to_minor_units(amount) <= 0:
        logger.info("Nothing to charge for %s %s; skipping checkout", record.kind, record.id)
        return None

    success_url, cancel_url = _checkout_urls()
    metadata = checkout_metadata(record, channel)
    snapshot = record.service_snapshot or {}

    try:
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            mode="payment",
            line_items=[{
                "price_data": {
                    "currency": settings.STRIPE_CURRENCY,
                    "product_data": {"name": snapshot.get("service_name") or "Service"},
                    "unit_amount": to_minor_units(amount),
                },
                "quantity": 1,
            }],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
        )
    except stripe.StripeError as e:
        logger.error("Stripe error creating checkout for %s %s: %s", record.kind, record.id, e)
        raise ExternalPaymentError("Failed to create checkout session", detail=str(e))

    record.checkout_session_id = session.id
    record.checkout_session_url = session.url
    record.payment_intent_status = "requires_payment_method"
    record.platform_fee, record.owner_payout = platform_split(amount, settings.PLATFORM_FEE_RATE)

    logger.info("Created checkout session %s for %s %s", session.id, record.kind, record.id)
    return session


def create_due_payment_intent(booking, channel: Channel):
    """Create (or reuse) the PaymentIntent collecting a completed booking's balance."""
    if booking.booking_status != BookingStatus.COMPLETED.value:
        raise IllegalPaymentTransition("Due payment can only be requested for completed bookings")
    if booking.payment_status in FINAL_PAYMENT_STATUSES:
        raise IllegalPaymentTransition(f"Booking payment is already {booking.payment_status}")

    due = round_money((booking.total_amount or 0) - (booking.down_payment or 0))
    if due <= 0:
        raise IllegalPaymentTransition("Booking has no outstanding balance")

    try:
        if booking.due_payment_intent_id:
            existing = stripe.PaymentIntent.retrieve(booking.due_payment_intent_id)
            if existing.status not in CLOSED_INTENT_STATUSES:
                logger.info("Reusing due intent %s for booking %s", existing.id, booking.id)
                return existing

        intent = stripe.PaymentIntent.create(
            amount=to_minor_units(due),
            currency=settings.STRIPE_CURRENCY,
            automatic_payment_methods={"enabled": True},
            metadata={
                channel.booking_metadata_key: str(booking.id),
                "userId": str(booking.user_id),
                channel.owner_metadata_key: str(channel.owner_id_of(booking)),
                "type": BOOKING_DUE_PAYMENT,
            },
        )
    except stripe.StripeError as e:
        logger.error("Stripe error creating due intent for booking %s: %s", booking.id, e)
        raise ExternalPaymentError("Failed to create due payment", detail=str(e))

    booking.due_amount = due
    booking.due_payment_intent_id = intent.id
    booking.due_payment_intent_status = intent.status
    booking.payment_status = BookingPaymentStatus.DUE_REQUESTED.value
    booking.due_requested_at = utcnow()

    logger.info("Created due intent %s (%s) for booking %s", intent.id, due, booking.id)
    return intent


def mark_offline_paid(booking) -> None:
    if booking.booking_status != BookingStatus.COMPLETED.value:
        raise IllegalPaymentTransition("Only completed bookings can be marked as paid offline")
    if booking.payment_status in FINAL_PAYMENT_STATUSES:
        raise IllegalPaymentTransition(f"Booking payment is already {booking.payment_status}")

    if booking.due_payment_intent_id:
        cancel_intent_quietly(booking.due_payment_intent_id)
        booking.due_payment_intent_status = "canceled"

    booking.payment_status = BookingPaymentStatus.OFFLINE_PAID.value
    booking.offline_paid_at = utcnow()
    booking.paid_via = PaidVia.OFFLINE.value
    booking.remaining_amount = 0


def cancel_intent_quietly(payment_intent_id: Optional[str]) -> bool:
    """Cancel an uncaptured PaymentIntent; failures are logged, never raised."""
    if not payment_intent_id:
        return False
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        if intent.status in CLOSED_INTENT_STATUSES:
            return False
        stripe.PaymentIntent.cancel(payment_intent_id)
        logger.info("Cancelled payment intent %s", payment_intent_id)
        return True
    except stripe.StripeError as e:
        logger.warning("Could not cancel payment intent %s: %s", payment_intent_id, e)
        return False


def expire_checkout_quietly(checkout_session_id: Optional[str]) -> bool:
    """Expire an open Checkout session; failures are logged, never raised."""
    if not checkout_session_id:
        return False
    try:
        stripe.checkout.Session.expire(checkout_session_id)
        logger.info("Expired checkout session %s", checkout_session_id)
        return True
    except stripe.StripeError as e:
        logger.warning("Could not expire checkout session %s: %s", checkout_session_id, e)
        return False


def release_pending_payment(record) -> None:
    """Stop collecting a rejected record's unpaid down payment."""
    if record.payment_intent_id and record.payment_intent_status != "succeeded":
        if cancel_intent_quietly(record.payment_intent_id):
            record.payment_intent_status = "canceled"
    elif record.checkout_session_id and record.payment_intent_status == "requires_payment_method":
        expire_checkout_quietly(record.checkout_session_id)


# ============================================================================
# PAYMENT RECEIVED (shared by webhook and confirm endpoints)
# ============================================================================

def record_down_payment(booking, payment_intent_id: Optional[str] = None, intent_status: str = "succeeded") -> bool:
    """Booking down payment captured. Returns True when the status moved."""
    if payment_intent_id:
        booking.payment_intent_id = payment_intent_id
    booking.payment_intent_status = intent_status
    if booking.payment_status in FINAL_PAYMENT_STATUSES or booking.payment_status == BookingPaymentStatus.DUE_REQUESTED.value:
        return False
    booking.payment_status = BookingPaymentStatus.PARTIAL.value
    return True


def record_full_payment(record, payment_intent_id: Optional[str] = None, intent_status: str = "succeeded") -> bool:
    """Appointment paid in full online. Returns True on the first transition to paid."""
    if payment_intent_id:
        record.payment_intent_id = payment_intent_id
    record.payment_intent_status = intent_status
    if record.payment_status in FINAL_PAYMENT_STATUSES:
        return False
    record.payment_status = AppointmentPaymentStatus.COMPLETED.value
    record.paid_via = PaidVia.ONLINE.value
    record.remaining_amount = 0
    if record.paid_at is None:
        record.paid_at = utcnow()
    return True


def record_due_payment(booking, intent_status: str = "succeeded") -> bool:
    """Booking balance paid online. Returns True on the first transition to paid."""
    booking.due_payment_intent_status = intent_status
    if booking.payment_status in FINAL_PAYMENT_STATUSES:
        return False
    booking.payment_status = BookingPaymentStatus.COMPLETED.value
    booking.paid_via = PaidVia.ONLINE.value
    booking.remaining_amount = 0
    if booking.due_paid_at is None:
        booking.due_paid_at = utcnow()
    return True


def record_authorized(booking, intent_status: str) -> None:
    booking.payment_intent_status = intent_status
    if booking.payment_status in (BookingPaymentStatus.PENDING.value, BookingPaymentStatus.PARTIAL.value):
        booking.payment_status = BookingPaymentStatus.AUTHORIZED.value


def confirm_due_payment(booking) -> str:
    """Check the due intent with Stripe and settle the booking if it succeeded."""
    if not booking.due_payment_intent_id:
        raise IllegalPaymentTransition("No due payment has been requested for this booking")
    try:
        intent = stripe.PaymentIntent.retrieve(booking.due_payment_intent_id)
    except stripe.StripeError as e:
        logger.error("Stripe error retrieving due intent %s: %s", booking.due_payment_intent_id, e)
        raise ExternalPaymentError("Failed to confirm due payment", detail=str(e))

    if intent.status == "succeeded":
        record_due_payment(booking, intent.status)
    else:
        booking.due_payment_intent_status = intent.status
    return intent.status


def get_due_payment_intent(booking):
    """Fetch the open due intent so the client can complete it."""
    if booking.payment_status != BookingPaymentStatus.DUE_REQUESTED.value or not booking.due_payment_intent_id:
        raise IllegalPaymentTransition("No due payment is pending for this booking")
    try:
        return stripe.PaymentIntent.retrieve(booking.due_payment_intent_id)
    except stripe.StripeError as e:
        logger.error("Stripe error retrieving due intent %s: %s", booking.due_payment_intent_id, e)
        raise ExternalPaymentError("Failed to load due payment", detail=str(e))


def payment_summary(record) -> dict:
    summary = {
        "payment_status": record.payment_status,
        "total_amount": record.total_amount,
        "down_payment": record.down_payment,
        "remaining_amount": record.remaining_amount,
        "payment_intent_status": record.payment_intent_status,
        "checkout_session_url": record.checkout_session_url,
        "paid_via": record.paid_via,
    }
    if record.kind == "booking":
        summary.update({
            "due_amount": record.due_amount,
            "due_payment_intent_status": record.due_payment_intent_status,
            "due_requested_at": record.due_requested_at,
            "due_paid_at": record.due_paid_at,
            "offline_paid_at": record.offline_paid_at,
        })
    else:
        summary["paid_at"] = record.paid_at
    return summary
