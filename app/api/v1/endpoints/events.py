"""Event ticket purchase endpoints."""

from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.api.v1.responses import ok
from app.core.database import get_db
from app.core.deps import get_current_user
from app.models.event import EventTicketPurchase
from app.models.user import User
from app.schemas.event import TicketPurchaseCreate, TicketPurchaseOut
from app.services import bookings as booking_service
from app.services.ticket_sales import create_ticket_purchase

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{event_id}/tickets", status_code=201)
async def buy_tickets(
    event_id: UUID,
    payload: TicketPurchaseCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Start a ticket purchase; returns the client secret to confirm the payment."""
    purchase, client_secret = await create_ticket_purchase(
        db,
        event_id,
        current_user,
        payload.quantity,
        [owner.model_dump() for owner in payload.ticket_owners],
    )
    return ok(
        {
            "purchase": TicketPurchaseOut.model_validate(purchase),
            "checkout": {"client_secret": client_secret},
        },
        "Ticket purchase created",
    )


@router.get("/my-tickets")
async def list_my_tickets(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(EventTicketPurchase)
        .where(EventTicketPurchase.user_id == current_user.id)
        .order_by(EventTicketPurchase.created_at.desc())
    )
    return ok([TicketPurchaseOut.model_validate(p) for p in result.scalars().all()])


@router.get("/tickets/{purchase_id}")
async def get_ticket_purchase(
    purchase_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    purchase = await booking_service.get_owned(db, EventTicketPurchase, purchase_id, "user_id", current_user.id)
    return ok(TicketPurchaseOut.model_validate(purchase))
