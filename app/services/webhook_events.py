"""Processed-event ledger that makes Stripe webhook handling idempotent.

A webhook is applied and its event id recorded in the same transaction.
Redeliveries of a recorded event short-circuit with ``IdempotentNoOp``.
Failed attempts are kept with their error so Stripe's retries can be
traced.
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import IdempotentNoOp
from app.models.stripe_event import ProcessedStripeEvent

logger = logging.getLogger(__name__)

PROCESSED = "processed"
FAILED = "failed"


async def get_event_record(db: AsyncSession, event_id: str) -> Optional[ProcessedStripeEvent]:
    result = await db.execute(select(ProcessedStripeEvent).where(ProcessedStripeEvent.event_id == event_id))
    return result.scalar_one_or_none()


async def process_once(
    db: AsyncSession,
    event: dict,
    handler: Callable[[AsyncSession, dict], Awaitable[None]],
) -> None:
    """Run ``handler`` for ``event`` unless the event id was already applied."""
    event_id = event.get("id")
    event_type = event.get("type", "unknown")
    if not event_id:
        # Unidentifiable events cannot be deduplicated; apply and move on.
        await handler(db, event)
        await db.commit()
        return

    record = await get_event_record(db, event_id)
    if record is not None and record.status == PROCESSED:
        logger.info("Stripe event %s (%s) already processed; skipping", event_id, event_type)
        raise IdempotentNoOp(f"Event {event_id} already processed")

    try:
        await handler(db, event)
        if record is None:
            record = ProcessedStripeEvent(event_id=event_id, event_type=event_type, attempts=1)
            db.add(record)
        else:
            record.attempts = (record.attempts or 0) + 1
        record.status = PROCESSED
        record.last_error = None
        record.processed_at = datetime.utcnow()
    except Exception as e:
        await db.rollback()
        await record_failure(db, event_id, event_type, e)
        raise

    try:
        await db.commit()
    except IntegrityError:
        # Another delivery of the same event committed first.
        await db.rollback()
        logger.info("Stripe event %s was processed concurrently; skipping", event_id)
        raise IdempotentNoOp(f"Event {event_id} already processed")


async def record_failure(db: AsyncSession, event_id: str, event_type: str, error: Exception) -> None:
    try:
        record = await get_event_record(db, event_id)
        if record is None:
            record = ProcessedStripeEvent(event_id=event_id, event_type=event_type, attempts=0)
            db.add(record)
        record.status = FAILED
        record.attempts = (record.attempts or 0) + 1
        record.last_error = f"{type(error).__name__}: {error}"
        await db.commit()
        logger.warning("Stripe event %s failed (attempt %d): %s", event_id, record.attempts, record.last_error)
    except Exception as e:
        await db.rollback()
        logger.error("Could not record failure for Stripe event %s: %s", event_id, e)
