"""Stripe webhook receiver.

Thin HTTP layer: signature check here, event handling lives in
app.services.stripe_webhooks and de-duplication in app.services.webhook_events.
"""

import json
import logging
import stripe

from fastapi import APIRouter, Request, HTTPException, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ConfigMissing, IdempotentNoOp
from app.services.stripe_webhooks import dispatch_event
from app.services.webhook_events import process_once

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/stripe")
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Receive Stripe payment, checkout and refund events.

    The raw body is verified before it is parsed. Success answers
    ``{"received": true}``; a handler failure answers 500 so Stripe retries.
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise ConfigMissing("Stripe webhook secret is not configured")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Stripe webhook without signature header")
        raise HTTPException(status_code=400, detail="Missing signature")

    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"),
            sig_header,
            settings.STRIPE_WEBHOOK_SECRET,
            settings.STRIPE_WEBHOOK_TOLERANCE,
        )
        event = json.loads(payload)
    except stripe.SignatureVerificationError:
        logger.error("Invalid webhook signature")
        raise HTTPException(status_code=400, detail="Invalid signature")
    except ValueError:
        logger.error("Invalid webhook payload")
        raise HTTPException(status_code=400, detail="Invalid payload")
    if not isinstance(event, dict):
        logger.error("Webhook payload is not a JSON object")
        raise HTTPException(status_code=400, detail="Invalid payload")

    logger.info("Stripe webhook received: %s (%s)", event.get("type"), event.get("id"))

    try:
        await process_once(db, event, dispatch_event)
    except IdempotentNoOp:
        return {"received": True, "duplicate": True}
    except Exception as e:
        logger.exception("Stripe webhook %s failed: %s", event.get("id"), e)
        return JSONResponse(status_code=500, content={"received": False})

    return {"received": True}
