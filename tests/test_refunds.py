"""Tests for admin refunds and the refund ledger."""

import pytest
import stripe
from unittest.mock import patch, MagicMock
from sqlalchemy import select

from app.models.refund_log import PaymentRefundLog, normalize_refund_status


def test_refund_status_normalization():
    for status in ("requested", "pending", "succeeded", "failed", "canceled", "requires_action"):
        assert normalize_refund_status(status) == status
    assert normalize_refund_status("processing") == "pending"
    assert normalize_refund_status(None) == "pending"


@pytest.mark.asyncio
async def test_admin_full_refund_marks_booking_refunded(client, db, admin, admin_headers, make_booking):
    booking = await make_booking(status="cancelled", payment_intent_id="pi_paid", payment_intent_status="succeeded")

    with patch("stripe.Refund.create", return_value=MagicMock(id="re_full", status="succeeded")) as mock_refund:
        resp = await client.post("/api/admin/refunds", headers=admin_headers, json={
            "source_model": "Booking",
            "source_id": str(booking.id),
            "reason": "requested_by_customer",
        })

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["refund_id"] == "re_full"
    assert data["status"] == "succeeded"
    assert data["amount"] == 30
    assert data["refunded_by_admin_id"] == str(admin.id)

    kwargs = mock_refund.call_args.kwargs
    assert kwargs["payment_intent"] == "pi_paid"
    assert kwargs["amount"] == 3000
    assert kwargs["idempotency_key"].startswith(f"refund_Booking_{booking.id}_")

    await db.refresh(booking)
    assert booking.payment_status == "refunded"


@pytest.mark.asyncio
async def test_partial_refund_leaves_payment_status(client, db, admin_headers, make_booking):
    booking = await make_booking(status="cancelled", payment_intent_id="pi_paid")

    with patch("stripe.Refund.create", return_value=MagicMock(id="re_part", status="pending")):
        resp = await client.post("/api/admin/refunds", headers=admin_headers, json={
            "source_model": "Booking",
            "source_id": str(booking.id),
            "amount": 10,
        })

    assert resp.status_code == 201
    assert resp.json()["data"]["status"] == "pending"
    await db.refresh(booking)
    assert booking.payment_status == "partial"


@pytest.mark.asyncio
async def test_refund_cannot_exceed_captured_amount(client, admin_headers, make_booking):
    booking = await make_booking(status="cancelled", payment_intent_id="pi_paid")
    resp = await client.post("/api/admin/refunds", headers=admin_headers, json={
        "source_model": "Booking",
        "source_id": str(booking.id),
        "amount": 31,
    })
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_refund_requires_a_captured_payment(client, admin_headers, make_booking):
    booking = await make_booking(status="pending")
    resp = await client.post("/api/admin/refunds", headers=admin_headers, json={
        "source_model": "Booking",
        "source_id": str(booking.id),
    })
    assert resp.status_code == 400
    assert resp.json()["error"] == "illegal_payment_transition"


@pytest.mark.asyncio
async def test_stripe_refund_error_is_logged_as_failed(client, db, admin_headers, make_booking):
    booking = await make_booking(status="cancelled", payment_intent_id="pi_paid")

    with patch("stripe.Refund.create", side_effect=stripe.StripeError("charge already refunded")):
        resp = await client.post("/api/admin/refunds", headers=admin_headers, json={
            "source_model": "Booking",
            "source_id": str(booking.id),
        })
    assert resp.status_code == 500

    result = await db.execute(select(PaymentRefundLog))
    log = result.scalar_one()
    assert log.status == "failed"
    assert "charge already refunded" in log.stripe_error


@pytest.mark.asyncio
async def test_refunds_are_admin_only(client, customer_headers, make_booking):
    booking = await make_booking(status="cancelled", payment_intent_id="pi_paid")
    resp = await client.post("/api/admin/refunds", headers=customer_headers, json={
        "source_model": "Booking",
        "source_id": str(booking.id),
    })
    assert resp.status_code == 403

    resp = await client.get("/api/admin/refunds", headers=customer_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_list_refunds_by_intent(client, admin_headers, make_booking):
    booking = await make_booking(status="cancelled", payment_intent_id="pi_paid")
    with patch("stripe.Refund.create", return_value=MagicMock(id="re_list", status="succeeded")):
        await client.post("/api/admin/refunds", headers=admin_headers, json={
            "source_model": "Booking",
            "source_id": str(booking.id),
            "amount": 5,
        })

    resp = await client.get("/api/admin/refunds", headers=admin_headers, params={"payment_intent_id": "pi_paid"})
    assert resp.status_code == 200
    assert [log["refund_id"] for log in resp.json()["data"]] == ["re_list"]

    resp = await client.get("/api/admin/refunds", headers=admin_headers, params={"payment_intent_id": "pi_other"})
    assert resp.json()["data"] == []
