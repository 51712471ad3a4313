"""Event ticket sales: purchase creation and crediting sold tickets."""

import logging
import stripe
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ExternalPaymentError, NotFound, OverSold, ValidationFailed
from app.core.money import platform_split, round_money, to_minor_units
from app.models.event import Event, EventStatus, EventTicketPurchase, TicketPaymentStatus
from app.models.refund_log import PaymentRefundLog, RefundStatus, normalize_refund_status
from app.models.user import User
from app.services.timeslots import utcnow

logger = logging.getLogger(__name__)

EVENT_TICKET_PURCHASE = "event_ticket_purchase"
MAX_TICKETS_PER_PURCHASE = 10


async def create_ticket_purchase(
    db: AsyncSession,
    event_id,
    user: User,
    quantity: int,
    ticket_owners: list,
) -> tuple[EventTicketPurchase, str | None]:
    """Reserve nothing yet; open a PaymentIntent for ``quantity`` tickets.

    Returns the purchase and the intent's client secret. Tickets are only
    counted once Stripe reports the payment (see ``credit_tickets``).
    """
    if quantity < 1 or quantity > MAX_TICKETS_PER_PURCHASE:
        raise ValidationFailed(f"Quantity must be between 1 and {MAX_TICKETS_PER_PURCHASE}")
    if len(ticket_owners) != quantity:
        raise ValidationFailed("Ticket owner details must be provided for every ticket")

    event = await db.get(Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    if event.status != EventStatus.PUBLISHED.value:
        raise ValidationFailed("Tickets are not on sale for this event")

    now = utcnow()
    if event.ticket_sales_start and now < event.ticket_sales_start:
        raise ValidationFailed("Ticket sales have not started yet")
    if event.ticket_sales_end and now > event.ticket_sales_end:
        raise ValidationFailed("Ticket sales have ended")
    if event.tickets_available < quantity:
        raise ValidationFailed(f"Only {event.tickets_available} tickets available")

    total = round_money(event.ticket_price * quantity)
    fee, payout = platform_split(total, settings.PLATFORM_FEE_RATE)

    purchase = EventTicketPurchase(
        event_id=event.id,
        user_id=user.id,
        event_manager_id=event.event_manager_id,
        quantity=quantity,
        ticket_owners=ticket_owners,
        ticket_price=event.ticket_price,
        total_amount=total,
        platform_fee=fee,
        event_manager_payout=payout,
    )
    db.add(purchase)
    await db.flush()

    if to_minor_units(total) <= 0:
        mark_purchase_paid(purchase)
        await credit_tickets(db, purchase)
        await db.commit()
        return purchase, None

    try:
        intent = stripe.PaymentIntent.create(
            amount=to_minor_units(total),
            currency=settings.STRIPE_CURRENCY,
            automatic_payment_methods={"enabled": True},
            metadata={
                "eventTicketPurchaseId": str(purchase.id),
                "eventId": str(event.id),
                "eventManagerId": str(event.event_manager_id),
                "userId": str(user.id),
                "type": EVENT_TICKET_PURCHASE,
            },
        )
    except stripe.StripeError as e:
        logger.error("Stripe error creating ticket intent for purchase %s: %s", purchase.id, e)
        purchase.payment_status = TicketPaymentStatus.FAILED.value
        await db.commit()
        raise ExternalPaymentError("Failed to create ticket payment", detail=str(e))

    purchase.payment_intent_id = intent.id
    purchase.payment_intent_status = intent.status
    await db.commit()
    await db.refresh(purchase)

    logger.info("Ticket purchase %s created for event %s (%d x %s)", purchase.id, event.id, quantity, event.ticket_price)
    return purchase, intent.client_secret


def mark_purchase_paid(purchase: EventTicketPurchase) -> bool:
    if purchase.payment_status in (TicketPaymentStatus.COMPLETED.value, TicketPaymentStatus.REFUNDED.value):
        return False
    purchase.payment_status = TicketPaymentStatus.COMPLETED.value
    if purchase.paid_at is None:
        purchase.paid_at = utcnow()
    return True


async def credit_tickets(db: AsyncSession, purchase: EventTicketPurchase) -> bool:
    """Add a paid purchase's tickets to the event exactly once.

    Both updates are conditional, so a replayed event or a concurrent
    worker cannot double count and ``tickets_sold`` never passes the cap.
    Returns False when nothing was credited.
    """
    claimed = await db.execute(
        update(EventTicketPurchase)
        .where(EventTicketPurchase.id == purchase.id, EventTicketPurchase.tickets_credited.is_(False))
        .values(tickets_credited=True)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        logger.info("Tickets for purchase %s already credited", purchase.id)
        return False

    incremented = await db.execute(
        update(Event)
        .where(
            Event.id == purchase.event_id,
            Event.tickets_sold + purchase.quantity <= Event.maximum_number_of_tickets,
        )
        .values(tickets_sold=Event.tickets_sold + purchase.quantity)
        .execution_options(synchronize_session=False)
    )
    if incremented.rowcount == 0:
        await db.execute(
            update(EventTicketPurchase)
            .where(EventTicketPurchase.id == purchase.id)
            .values(tickets_credited=False)
            .execution_options(synchronize_session=False)
        )
        error = OverSold(f"Event {purchase.event_id} cannot fit {purchase.quantity} more tickets")
        logger.error("%s (purchase %s)", error.message, purchase.id)
        await handle_oversell(db, purchase)
        return False

    purchase.tickets_credited = True
    logger.info("Credited %d tickets to event %s for purchase %s", purchase.quantity, purchase.event_id, purchase.id)
    return True


def oversell_refund_key(purchase: EventTicketPurchase) -> str:
    return f"oversold_{purchase.id}"


async def was_refunded_for_oversell(db: AsyncSession, purchase: EventTicketPurchase) -> bool:
    result = await db.execute(
        select(PaymentRefundLog.id).where(PaymentRefundLog.idempotency_key == oversell_refund_key(purchase))
    )
    return result.scalar_one_or_none() is not None


async def handle_oversell(db: AsyncSession, purchase: EventTicketPurchase) -> None:
    """Fail the purchase and refund it in full; refund errors are logged only."""
    purchase.payment_status = TicketPaymentStatus.FAILED.value
    purchase.tickets_credited = False
    if not purchase.payment_intent_id:
        return

    log = PaymentRefundLog(
        payment_intent_id=purchase.payment_intent_id,
        source_model="EventTicketPurchase",
        source_id=purchase.id,
        source_payment_field="payment_intent_id",
        amount=purchase.total_amount,
        currency=settings.STRIPE_CURRENCY,
        status=RefundStatus.REQUESTED.value,
        reason="oversold",
        idempotency_key=oversell_refund_key(purchase),
    )
    db.add(log)
    try:
        refund = stripe.Refund.create(
            payment_intent=purchase.payment_intent_id,
            metadata={"eventTicketPurchaseId": str(purchase.id), "reason": "oversold"},
            idempotency_key=log.idempotency_key,
        )
    except stripe.StripeError as e:
        logger.error("Oversell refund failed for purchase %s: %s", purchase.id, e)
        log.status = RefundStatus.FAILED.value
        log.stripe_error = str(e)
        return

    log.refund_id = refund.id
    log.status = normalize_refund_status(refund.status)
