"""Tests for the owner dashboard: stats, upcoming schedule and feeds."""

import pytest
from datetime import datetime, timedelta

from app.services.stats import percent_change, resolve_activity


def test_percent_change():
    assert percent_change(0, 0) == 0
    assert percent_change(5, 0) == 100
    assert percent_change(15, 10) == 50
    assert percent_change(5, 10) == -50
    assert percent_change(2, 3) == -33


def test_resolve_activity_prefers_payment():
    assert resolve_activity("completed", "offline_paid") == "payment_received"
    assert resolve_activity("completed", "partial") == "order_completed"
    assert resolve_activity("rejected", "pending") == "order_canceled"
    assert resolve_activity("no_show", "pending") == "order_canceled"
    assert resolve_activity("pending", "partial") == "new_booking_received"


@pytest.mark.asyncio
async def test_owner_stats(client, provider_headers, make_booking, make_appointment):
    await make_booking(status="completed", payment_status="offline_paid")
    await make_booking(status="pending")
    await make_appointment("09:00", "10:00", status="confirmed")

    resp = await client.get("/api/providers/stats", headers=provider_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["orders"]["total"] == 3
    assert data["orders"]["this_month"] == 3
    assert data["orders"]["active"] == 2
    assert data["pending_requests"] == 1
    assert data["completed_jobs"] == 1
    assert data["income"]["total"] == 100
    assert data["income"]["this_month"] == 100
    assert data["growth"] == {"orders": 100, "income": 100}
    assert data["by_status"]["bookings"] == {"completed": 1, "pending": 1}
    assert data["by_status"]["appointments"] == {"confirmed": 1}


@pytest.mark.asyncio
async def test_stats_are_scoped_to_owner(client, owner_headers, make_booking):
    await make_booking(status="completed", payment_status="offline_paid")

    resp = await client.get("/api/business-owners/stats", headers=owner_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["orders"]["total"] == 0


@pytest.mark.asyncio
async def test_upcoming_schedule_is_sorted(client, provider_headers, make_booking, make_appointment):
    await make_booking(status="confirmed", booking_date=datetime(2030, 1, 20, 8, 0))
    await make_booking(status="cancelled", booking_date=datetime(2030, 1, 10, 8, 0))
    await make_appointment("09:00", "10:00", status="pending")

    resp = await client.get("/api/providers/upcoming", headers=provider_headers)
    assert resp.status_code == 200
    items = resp.json()["data"]
    assert [item["type"] for item in items] == ["appointment", "booking"]
    assert items[0]["start_time"] == "09:00"


@pytest.mark.asyncio
async def test_orders_feed_filters_by_status(client, provider_headers, make_booking, make_appointment):
    await make_booking(status="completed")
    await make_booking(status="pending")
    await make_appointment("09:00", "10:00", status="completed")

    resp = await client.get("/api/providers/orders", headers=provider_headers, params={"status": "completed"})
    assert resp.status_code == 200
    items = resp.json()["data"]
    assert len(items) == 2
    assert {item["status"] for item in items} == {"completed"}


@pytest.mark.asyncio
async def test_activity_feed(client, db, provider_headers, make_booking, make_appointment):
    await make_booking(status="completed", payment_status="offline_paid")
    await make_booking(status="rejected")
    old = await make_appointment("09:00", "10:00", status="cancelled")
    old.updated_at = datetime.utcnow() - timedelta(days=40)
    await db.commit()

    resp = await client.get("/api/providers/activities", headers=provider_headers)
    assert resp.status_code == 200
    activities = [item["activity"] for item in resp.json()["data"]]
    assert sorted(activities) == ["order_canceled", "order_canceled", "payment_received"]

    resp = await client.get("/api/providers/activities", headers=provider_headers, params={"status": "cancelled"})
    assert len(resp.json()["data"]) == 2

    resp = await client.get("/api/providers/activities", headers=provider_headers, params={"range": "week"})
    assert len(resp.json()["data"]) == 2

    resp = await client.get("/api/providers/activities", headers=provider_headers, params={"range": "year"})
    assert resp.status_code == 400
