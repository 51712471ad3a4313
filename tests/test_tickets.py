"""Tests for event ticket purchases."""

import pytest
import stripe
from datetime import datetime, timedelta
from unittest.mock import patch, MagicMock
from sqlalchemy import select

from app.models.event import Event, EventStatus, EventTicketPurchase


def _owners(count):
    return [{"name": f"Guest {i}", "email": f"guest{i}@example.com"} for i in range(count)]


@pytest.mark.asyncio
async def test_purchase_opens_payment_intent(client, db, customer_headers, ticketed_event):
    intent = MagicMock(id="pi_new", status="requires_payment_method", client_secret="pi_new_secret")
    with patch("stripe.PaymentIntent.create", return_value=intent) as mock_create:
        resp = await client.post(
            f"/api/events/{ticketed_event.id}/tickets",
            headers=customer_headers,
            json={"quantity": 2, "ticket_owners": _owners(2)},
        )

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["checkout"]["client_secret"] == "pi_new_secret"
    purchase = data["purchase"]
    assert purchase["total_amount"] == 50
    assert purchase["platform_fee"] == 5
    assert purchase["event_manager_payout"] == 45
    assert purchase["payment_status"] == "pending"
    assert purchase["tickets_credited"] is False

    kwargs = mock_create.call_args.kwargs
    assert kwargs["amount"] == 5000
    assert kwargs["metadata"]["eventTicketPurchaseId"] == purchase["id"]
    assert kwargs["metadata"]["type"] == "event_ticket_purchase"

    # Seats are only counted once the payment succeeds.
    await db.refresh(ticketed_event)
    assert ticketed_event.tickets_sold == 8


@pytest.mark.asyncio
async def test_purchase_cannot_exceed_remaining_seats(client, customer_headers, ticketed_event):
    resp = await client.post(
        f"/api/events/{ticketed_event.id}/tickets",
        headers=customer_headers,
        json={"quantity": 3, "ticket_owners": _owners(3)},
    )
    assert resp.status_code == 400
    assert "2 tickets available" in resp.json()["message"]


@pytest.mark.asyncio
async def test_owner_details_must_match_quantity(client, customer_headers, ticketed_event):
    resp = await client.post(
        f"/api/events/{ticketed_event.id}/tickets",
        headers=customer_headers,
        json={"quantity": 2, "ticket_owners": _owners(1)},
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_quantity_is_capped_at_ten(client, customer_headers, ticketed_event):
    resp = await client.post(
        f"/api/events/{ticketed_event.id}/tickets",
        headers=customer_headers,
        json={"quantity": 11, "ticket_owners": _owners(11)},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation failed"


@pytest.mark.asyncio
async def test_sales_window_and_status(client, db, customer_headers, ticketed_event):
    ticketed_event.ticket_sales_end = datetime.utcnow() - timedelta(days=1)
    await db.commit()
    resp = await client.post(
        f"/api/events/{ticketed_event.id}/tickets",
        headers=customer_headers,
        json={"quantity": 1, "ticket_owners": _owners(1)},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Ticket sales have ended"

    ticketed_event.ticket_sales_end = None
    ticketed_event.status = EventStatus.DRAFT.value
    await db.commit()
    resp = await client.post(
        f"/api/events/{ticketed_event.id}/tickets",
        headers=customer_headers,
        json={"quantity": 1, "ticket_owners": _owners(1)},
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_free_tickets_are_credited_immediately(client, db, customer_headers, ticketed_event):
    ticketed_event.ticket_price = 0
    await db.commit()

    with patch("stripe.PaymentIntent.create") as mock_create:
        resp = await client.post(
            f"/api/events/{ticketed_event.id}/tickets",
            headers=customer_headers,
            json={"quantity": 2, "ticket_owners": _owners(2)},
        )
    assert resp.status_code == 201
    assert resp.json()["data"]["purchase"]["payment_status"] == "completed"
    assert resp.json()["data"]["checkout"]["client_secret"] is None
    mock_create.assert_not_called()

    event = await db.get(Event, ticketed_event.id)
    await db.refresh(event)
    assert event.tickets_sold == 10


@pytest.mark.asyncio
async def test_stripe_failure_marks_purchase_failed(client, db, customer_headers, ticketed_event):
    with patch("stripe.PaymentIntent.create", side_effect=stripe.StripeError("declined")):
        resp = await client.post(
            f"/api/events/{ticketed_event.id}/tickets",
            headers=customer_headers,
            json={"quantity": 1, "ticket_owners": _owners(1)},
        )
    assert resp.status_code == 500

    result = await db.execute(select(EventTicketPurchase))
    purchase = result.scalar_one()
    assert purchase.payment_status == "failed"


@pytest.mark.asyncio
async def test_my_tickets_lists_only_own_purchases(client, customer_headers, other_headers, ticketed_event):
    intent = MagicMock(id="pi_mine", status="requires_payment_method", client_secret="secret")
    with patch("stripe.PaymentIntent.create", return_value=intent):
        resp = await client.post(
            f"/api/events/{ticketed_event.id}/tickets",
            headers=customer_headers,
            json={"quantity": 1, "ticket_owners": _owners(1)},
        )
    purchase_id = resp.json()["data"]["purchase"]["id"]

    resp = await client.get("/api/events/my-tickets", headers=customer_headers)
    assert [p["id"] for p in resp.json()["data"]] == [purchase_id]

    resp = await client.get("/api/events/my-tickets", headers=other_headers)
    assert resp.json()["data"] == []

    resp = await client.get(f"/api/events/tickets/{purchase_id}", headers=other_headers)
    assert resp.status_code == 403
