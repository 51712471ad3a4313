"""Apply Stripe webhook events to bookings, appointments, ticket purchases and refunds.

Every update is monotone: a payment status never moves backwards and paid
timestamps are only stamped on the first transition, so a redelivered
event that slips past the processed-event ledger is still harmless.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.event import EventTicketPurchase, TicketPaymentStatus
from app.services import payments
from app.services.channels import CHANNELS, Channel
from app.services.refunds import sync_refund_log
from app.services.ticket_sales import credit_tickets, mark_purchase_paid, was_refunded_for_oversell

logger = logging.getLogger(__name__)

BOOKING = "booking"
DUE = "due"
APPOINTMENT = "appointment"
TICKET = "ticket"


@dataclass
class Target:
    kind: str
    record: Any
    channel: Optional[Channel] = None


def _as_uuid(value) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


async def _first(db: AsyncSession, model, column, value):
    if not value:
        return None
    result = await db.execute(select(model).where(column == value))
    return result.scalars().first()


async def _by_intent(db: AsyncSession, intent_id: Optional[str]) -> Optional[Target]:
    # Due intents first: their metadata also carries the booking id.
    for channel in CHANNELS:
        model = channel.booking_model
        record = await _first(db, model, model.due_payment_intent_id, intent_id)
        if record:
            return Target(DUE, record, channel)
    for channel in CHANNELS:
        model = channel.booking_model
        record = await _first(db, model, model.payment_intent_id, intent_id)
        if record:
            return Target(BOOKING, record, channel)
    for channel in CHANNELS:
        model = channel.appointment_model
        record = await _first(db, model, model.payment_intent_id, intent_id)
        if record:
            return Target(APPOINTMENT, record, channel)
    record = await _first(db, EventTicketPurchase, EventTicketPurchase.payment_intent_id, intent_id)
    if record:
        return Target(TICKET, record)
    return None


async def _by_checkout_session(db: AsyncSession, session_id: Optional[str]) -> Optional[Target]:
    for channel in CHANNELS:
        for kind, model in ((BOOKING, channel.booking_model), (APPOINTMENT, channel.appointment_model)):
            record = await _first(db, model, model.checkout_session_id, session_id)
            if record:
                return Target(kind, record, channel)
    return None


async def _by_metadata(db: AsyncSession, metadata: dict) -> Optional[Target]:
    metadata = metadata or {}
    for channel in CHANNELS:
        booking_id = _as_uuid(metadata.get(channel.booking_metadata_key))
        if booking_id:
            record = await db.get(channel.booking_model, booking_id)
            if record:
                kind = DUE if metadata.get("type") == payments.BOOKING_DUE_PAYMENT else BOOKING
                return Target(kind, record, channel)
        appointment_id = _as_uuid(metadata.get(channel.appointment_metadata_key))
        if appointment_id:
            record = await db.get(channel.appointment_model, appointment_id)
            if record:
                return Target(APPOINTMENT, record, channel)
    purchase_id = _as_uuid(metadata.get("eventTicketPurchaseId"))
    if purchase_id:
        record = await db.get(EventTicketPurchase, purchase_id)
        if record:
            return Target(TICKET, record)
    return None


async def locate(db: AsyncSession, obj: dict, intent_id: Optional[str], session_id: Optional[str] = None) -> Optional[Target]:
    """Find the aggregate an event refers to: intent id, then checkout session, then metadata."""
    target = await _by_intent(db, intent_id)
    if target is None and session_id:
        target = await _by_checkout_session(db, session_id)
    if target is None:
        target = await _by_metadata(db, obj.get("metadata"))
    return target


# ============================================================================
# EVENT HANDLERS
# ============================================================================

async def _ticket_paid(db: AsyncSession, purchase: EventTicketPurchase, intent_status: str) -> None:
    purchase.payment_intent_status = intent_status
    if purchase.payment_status == TicketPaymentStatus.FAILED.value and await was_refunded_for_oversell(db, purchase):
        logger.info("Purchase %s was refunded as oversold; ignoring payment", purchase.id)
        return
    mark_purchase_paid(purchase)
    if purchase.payment_status == TicketPaymentStatus.COMPLETED.value:
        await credit_tickets(db, purchase)


async def handle_checkout_completed(db: AsyncSession, session: dict) -> None:
    if session.get("payment_status") != "paid":
        logger.info("Checkout session %s completed unpaid (%s)", session.get("id"), session.get("payment_status"))
        return

    intent_id = session.get("payment_intent")
    target = await locate(db, session, intent_id, session.get("id"))
    if target is None:
        logger.warning("No record for checkout session %s", session.get("id"))
        return

    if target.kind == BOOKING:
        payments.record_down_payment(target.record, intent_id)
    elif target.kind == APPOINTMENT:
        payments.record_full_payment(target.record, intent_id)
    elif target.kind == TICKET:
        await _ticket_paid(db, target.record, "succeeded")
    logger.info("Checkout %s paid for %s %s", session.get("id"), target.kind, target.record.id)


async def handle_amount_capturable(db: AsyncSession, intent: dict) -> None:
    target = await locate(db, intent, intent.get("id"))
    if target is None:
        logger.warning("No record for payment intent %s", intent.get("id"))
        return
    if target.kind == BOOKING:
        payments.record_authorized(target.record, intent.get("status"))
    elif target.kind == DUE:
        target.record.due_payment_intent_status = intent.get("status")
    else:
        target.record.payment_intent_status = intent.get("status")


async def handle_intent_succeeded(db: AsyncSession, intent: dict) -> None:
    intent_id = intent.get("id")
    status = intent.get("status") or "succeeded"
    target = await locate(db, intent, intent_id)
    if target is None:
        logger.warning("No record for payment intent %s", intent_id)
        return

    if target.kind == DUE:
        if not target.record.due_payment_intent_id:
            target.record.due_payment_intent_id = intent_id
        payments.record_due_payment(target.record, status)
    elif target.kind == BOOKING:
        payments.record_down_payment(target.record, intent_id, status)
    elif target.kind == APPOINTMENT:
        payments.record_full_payment(target.record, intent_id, status)
    elif target.kind == TICKET:
        if not target.record.payment_intent_id:
            target.record.payment_intent_id = intent_id
        await _ticket_paid(db, target.record, status)
    logger.info("Payment intent %s succeeded for %s %s", intent_id, target.kind, target.record.id)


async def handle_intent_unsuccessful(db: AsyncSession, intent: dict) -> None:
    """payment_intent.payment_failed and payment_intent.canceled."""
    intent_id = intent.get("id")
    status = intent.get("status")
    target = await locate(db, intent, intent_id)
    if target is None:
        logger.warning("No record for payment intent %s", intent_id)
        return

    record = target.record
    if target.kind == DUE:
        if record.due_payment_intent_status != "succeeded":
            record.due_payment_intent_status = status
    elif record.payment_intent_status != "succeeded":
        record.payment_intent_status = status

    if target.kind == TICKET and record.payment_status == TicketPaymentStatus.PENDING.value:
        record.payment_status = TicketPaymentStatus.FAILED.value
    logger.info("Payment intent %s %s for %s %s", intent_id, status, target.kind, record.id)


async def handle_refund_updated(db: AsyncSession, refund: dict) -> None:
    await sync_refund_log(db, refund)


HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "payment_intent.amount_capturable_updated": handle_amount_capturable,
    "payment_intent.succeeded": handle_intent_succeeded,
    "payment_intent.payment_failed": handle_intent_unsuccessful,
    "payment_intent.canceled": handle_intent_unsuccessful,
    "refund.created": handle_refund_updated,
    "refund.updated": handle_refund_updated,
}


async def dispatch_event(db: AsyncSession, event: dict) -> None:
    event_type = event.get("type")
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled Stripe event type: %s", event_type)
        return
    await handler(db, (event.get("data") or {}).get("object") or {})
