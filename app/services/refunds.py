"""Refund requests and their reconciliation with Stripe refund events."""

import logging
import uuid
import stripe
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ExternalPaymentError, IllegalPaymentTransition, NotFound, ValidationFailed
from app.core.money import round_money, to_minor_units
from app.models.appointment import Appointment, BusinessOwnerAppointment
from app.models.booking import Booking, BusinessOwnerBooking
from app.models.event import EventTicketPurchase
from app.models.refund_log import PaymentRefundLog, RefundStatus, OPEN_REFUND_STATUSES, normalize_refund_status

logger = logging.getLogger(__name__)

REFUND_SOURCES = {
    "Booking": Booking,
    "BusinessOwnerBooking": BusinessOwnerBooking,
    "Appointment": Appointment,
    "BusinessOwnerAppointment": BusinessOwnerAppointment,
    "EventTicketPurchase": EventTicketPurchase,
}

PAYMENT_FIELDS = ("payment_intent_id", "due_payment_intent_id")


def refundable_amount(record, payment_field: str) -> float:
    """Amount captured through ``payment_field`` on ``record``."""
    if payment_field == "due_payment_intent_id":
        return round_money(record.due_amount)
    if isinstance(record, (Booking, BusinessOwnerBooking)):
        return round_money(record.down_payment)
    return round_money(record.total_amount)


async def request_refund(
    db: AsyncSession,
    source_model: str,
    source_id,
    payment_field: str = "payment_intent_id",
    amount: Optional[float] = None,
    reason: Optional[str] = None,
    note: Optional[str] = None,
    admin_id=None,
) -> PaymentRefundLog:
    """Log a refund and submit it to Stripe under the log's idempotency key."""
    model = REFUND_SOURCES.get(source_model)
    if model is None:
        raise ValidationFailed(f"Unknown refund source '{source_model}'")
    if payment_field not in PAYMENT_FIELDS or not hasattr(model, payment_field):
        raise ValidationFailed(f"'{payment_field}' is not a payment of {source_model}")

    record = await db.get(model, source_id)
    if record is None:
        raise NotFound(f"{source_model} not found")

    payment_intent_id = getattr(record, payment_field)
    if not payment_intent_id:
        raise IllegalPaymentTransition("No captured payment to refund")

    paid = refundable_amount(record, payment_field)
    amount = round_money(amount if amount is not None else paid)
    if amount <= 0 or amount > paid:
        raise ValidationFailed(f"Refund amount must be between 0 and {paid:.2f}")

    log = PaymentRefundLog(
        payment_intent_id=payment_intent_id,
        source_model=source_model,
        source_id=record.id,
        source_payment_field=payment_field,
        amount=amount,
        currency=settings.STRIPE_CURRENCY,
        status=RefundStatus.REQUESTED.value,
        reason=reason,
        note=note,
        idempotency_key=f"refund_{source_model}_{record.id}_{uuid.uuid4().hex}",
        refunded_by_admin_id=admin_id,
    )
    db.add(log)
    await db.flush()

    try:
        refund = stripe.Refund.create(
            payment_intent=payment_intent_id,
            amount=to_minor_units(amount),
            metadata={
                "refundLogId": str(log.id),
                "sourceModel": source_model,
                "sourceId": str(record.id),
            },
            idempotency_key=log.idempotency_key,
        )
    except stripe.StripeError as e:
        logger.error("Stripe refund failed for %s %s (%s): %s", source_model, record.id, payment_intent_id, e)
        log.status = RefundStatus.FAILED.value
        log.stripe_error = str(e)
        await db.commit()
        raise ExternalPaymentError("Refund failed", detail=str(e))

    log.refund_id = refund.id
    log.status = normalize_refund_status(refund.status)
    await _settle_source(db, log)
    await db.commit()
    await db.refresh(log)

    logger.info("Refund %s (%s) requested for %s %s", refund.id, log.status, source_model, record.id)
    return log


async def sync_refund_log(db: AsyncSession, refund: dict) -> Optional[PaymentRefundLog]:
    """Apply a Stripe refund object to the ledger.

    Looks the log up by refund id first; on the first sighting of a refund
    id, binds it to the newest still-open log for the same payment intent.
    Returns None when no log matches.
    """
    refund_id = refund.get("id")
    payment_intent_id = refund.get("payment_intent")

    log = None
    if refund_id:
        result = await db.execute(select(PaymentRefundLog).where(PaymentRefundLog.refund_id == refund_id))
        log = result.scalar_one_or_none()

    if log is None and payment_intent_id:
        result = await db.execute(
            select(PaymentRefundLog)
            .where(
                PaymentRefundLog.payment_intent_id == payment_intent_id,
                PaymentRefundLog.refund_id.is_(None),
                PaymentRefundLog.status.in_(OPEN_REFUND_STATUSES),
            )
            .order_by(PaymentRefundLog.created_at.desc())
            .limit(1)
        )
        log = result.scalar_one_or_none()

    if log is None:
        logger.warning("No refund log for refund %s (intent %s)", refund_id, payment_intent_id)
        return None

    if refund_id:
        log.refund_id = refund_id
    log.status = normalize_refund_status(refund.get("status"))
    if refund.get("failure_reason"):
        log.stripe_error = refund.get("failure_reason")
    log.details = {
        **(log.details or {}),
        "stripe_refund_status": refund.get("status"),
        "charge_id": refund.get("charge"),
        "receipt_number": refund.get("receipt_number"),
    }
    await _settle_source(db, log)

    logger.info("Refund log %s synced: refund %s -> %s", log.id, log.refund_id, log.status)
    return log


async def _settle_source(db: AsyncSession, log: PaymentRefundLog) -> None:
    """Flag the refunded payment on its source once the refund covers it in full."""
    if log.status != RefundStatus.SUCCEEDED.value:
        return
    model = REFUND_SOURCES.get(log.source_model)
    record = await db.get(model, log.source_id) if model else None
    if record is None:
        return
    if log.amount >= refundable_amount(record, log.source_payment_field):
        record.payment_status = "refunded"
