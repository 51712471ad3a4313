"""Tests for appointment endpoints: slot reservation, rescheduling and the owner flow."""

import pytest
from datetime import datetime
from unittest.mock import patch, MagicMock
from sqlalchemy import select, func

from app.models.appointment import Appointment, BusinessOwnerAppointment


def _slot_payload(service, start, end, day="2030-01-15"):
    return {
        "service_id": str(service.id),
        "appointment_date": day,
        "time_slot": {"start_time": start, "end_time": end},
    }


async def _count(db, model=Appointment):
    result = await db.execute(select(func.count(model.id)))
    return result.scalar()


@pytest.mark.asyncio
async def test_happy_path_appointment(client, db, customer_headers, provider_headers, slot_service, send_event):
    """Create, accept with checkout, pay through the webhook, complete."""
    resp = await client.post("/api/appointments", headers=customer_headers, json=_slot_payload(slot_service, "09:00", "10:00"))
    assert resp.status_code == 201
    created = resp.json()["data"]
    assert created["total_amount"] == 50
    assert created["appointment_status"] == "pending"
    assert created["selected_slot"]["slot_id"] == "A"
    appointment_id = created["id"]

    session = MagicMock(id="cs_test_appt", url="https://checkout.stripe.com/c/pay/cs_test_appt")
    with patch("stripe.checkout.Session.create", return_value=session) as mock_create:
        resp = await client.patch(f"/api/providers/appointments/{appointment_id}/accept", headers=provider_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["appointment"]["appointment_status"] == "confirmed"
    assert data["appointment"]["payment_intent_status"] == "requires_payment_method"
    assert data["checkout"]["session_url"] is not None
    assert mock_create.call_args.kwargs["metadata"]["type"] == "appointment_full_payment"
    assert mock_create.call_args.kwargs["line_items"][0]["price_data"]["unit_amount"] == 5000

    resp = await send_event("checkout.session.completed", {
        "id": "cs_test_appt",
        "object": "checkout.session",
        "payment_status": "paid",
        "payment_intent": "pi_appt",
        "metadata": {"appointmentId": appointment_id, "type": "appointment_full_payment"},
    })
    assert resp.status_code == 200
    assert resp.json() == {"received": True}

    resp = await client.get(f"/api/appointments/{appointment_id}", headers=customer_headers)
    paid = resp.json()["data"]
    assert paid["payment_status"] == "completed"
    assert paid["paid_via"] == "online"
    assert paid["remaining_amount"] == 0
    assert paid["paid_at"] is not None

    resp = await client.patch(f"/api/providers/appointments/{appointment_id}/complete", headers=provider_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["appointment_status"] == "completed"
    assert resp.json()["data"]["completed_at"] is not None


@pytest.mark.asyncio
async def test_overlapping_slot_is_rejected(client, db, other_headers, slot_service, make_appointment):
    await make_appointment("09:30", "10:30", status="confirmed")

    resp = await client.post("/api/appointments", headers=other_headers, json=_slot_payload(slot_service, "10:00", "11:00"))
    assert resp.status_code == 409
    assert resp.json()["error"] == "slot_conflict"
    assert await _count(db) == 1


@pytest.mark.asyncio
async def test_adjacent_slot_is_allowed(client, db, other_headers, slot_service, make_appointment):
    await make_appointment("09:00", "10:00", status="confirmed")

    resp = await client.post("/api/appointments", headers=other_headers, json=_slot_payload(slot_service, "10:00", "11:00"))
    assert resp.status_code == 201
    assert await _count(db) == 2


@pytest.mark.asyncio
async def test_cancelled_appointment_frees_slot(client, other_headers, slot_service, make_appointment):
    await make_appointment("09:00", "10:00", status="cancelled")

    resp = await client.post("/api/appointments", headers=other_headers, json=_slot_payload(slot_service, "09:00", "10:00"))
    assert resp.status_code == 201


@pytest.mark.asyncio
async def test_invalid_time_range(client, customer_headers, slot_service):
    resp = await client.post("/api/appointments", headers=customer_headers, json=_slot_payload(slot_service, "11:00", "10:00"))
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_time_slot"


@pytest.mark.asyncio
async def test_past_date_is_rejected(client, customer_headers, slot_service):
    resp = await client.post(
        "/api/appointments",
        headers=customer_headers,
        json=_slot_payload(slot_service, "09:00", "10:00", day="2001-01-15"),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_booking_service_rejects_appointments(client, customer_headers, booking_service):
    resp = await client.post("/api/appointments", headers=customer_headers, json=_slot_payload(booking_service, "09:00", "10:00"))
    assert resp.status_code == 400


# ============================================================================
# RESCHEDULE
# ============================================================================

@pytest.mark.asyncio
async def test_reschedule_into_conflict_keeps_original_time(client, db, provider_headers, make_appointment):
    moving = await make_appointment("09:00", "10:00", status="confirmed")
    await make_appointment("10:00", "11:00", status="confirmed")

    resp = await client.patch(
        f"/api/providers/appointments/{moving.id}/reschedule",
        headers=provider_headers,
        json={"appointment_date": "2030-01-15", "time_slot": {"start_time": "09:30", "end_time": "10:30"}},
    )
    assert resp.status_code == 409

    await db.refresh(moving)
    assert (moving.start_time, moving.end_time) == ("09:00", "10:00")
    assert moving.appointment_status == "confirmed"


@pytest.mark.asyncio
async def test_owner_reschedule_keeps_status_and_notes_it(client, db, provider_headers, make_appointment):
    appointment = await make_appointment("09:00", "10:00", status="confirmed")

    resp = await client.patch(
        f"/api/providers/appointments/{appointment.id}/reschedule",
        headers=provider_headers,
        json={
            "appointment_date": "2030-01-16",
            "time_slot": {"start_time": "14:00", "end_time": "15:00"},
            "note": "Van in the shop",
        },
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["appointment_date"] == "2030-01-16"
    assert data["start_time"] == "14:00"
    assert data["appointment_status"] == "confirmed"
    assert "Rescheduled by provider from 2030-01-15 09:00-10:00 to 2030-01-16 14:00-15:00" in data["provider_notes"]


@pytest.mark.asyncio
async def test_reschedule_may_overlap_its_own_old_slot(client, provider_headers, make_appointment):
    appointment = await make_appointment("09:00", "10:00", status="confirmed")

    resp = await client.patch(
        f"/api/providers/appointments/{appointment.id}/reschedule",
        headers=provider_headers,
        json={"appointment_date": "2030-01-15", "time_slot": {"start_time": "09:30", "end_time": "10:30"}},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["start_time"] == "09:30"


@pytest.mark.asyncio
async def test_user_reschedule_returns_to_pending(client, customer_headers, make_appointment):
    appointment = await make_appointment("09:00", "10:00", status="confirmed")

    resp = await client.patch(
        f"/api/appointments/{appointment.id}/reschedule",
        headers=customer_headers,
        json={"appointment_date": "2030-01-20", "time_slot": {"start_time": "11:00", "end_time": "12:00"}},
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["appointment_status"] == "pending"
    assert "Rescheduled by user" in data["user_notes"]


@pytest.mark.asyncio
async def test_completed_appointment_cannot_be_rescheduled(client, provider_headers, make_appointment):
    appointment = await make_appointment("09:00", "10:00", status="completed")

    resp = await client.patch(
        f"/api/providers/appointments/{appointment.id}/reschedule",
        headers=provider_headers,
        json={"appointment_date": "2030-01-16", "time_slot": {"start_time": "09:00", "end_time": "10:00"}},
    )
    assert resp.status_code == 400


# ============================================================================
# OWNER ACTIONS AND AVAILABILITY
# ============================================================================

@pytest.mark.asyncio
async def test_no_show_requires_confirmed(client, provider_headers, make_appointment):
    pending = await make_appointment("09:00", "10:00", status="pending")
    resp = await client.patch(f"/api/providers/appointments/{pending.id}/no-show", headers=provider_headers)
    assert resp.status_code == 400

    confirmed = await make_appointment("11:00", "12:00", status="confirmed")
    resp = await client.patch(f"/api/providers/appointments/{confirmed.id}/no-show", headers=provider_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["appointment_status"] == "no_show"


@pytest.mark.asyncio
async def test_available_slots_lists_booked_intervals(client, slot_service, make_appointment):
    await make_appointment("09:00", "10:00", status="confirmed")
    await make_appointment("13:00", "14:00", status="cancelled")

    resp = await client.get(f"/api/appointments/available-slots/{slot_service.id}", params={"date": "2030-01-15"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [slot["slot_id"] for slot in data["slots"]] == ["A"]
    assert data["booked"] == [{"start_time": "09:00", "end_time": "10:00"}]


@pytest.mark.asyncio
async def test_business_owner_calendars_are_per_service(client, db, customer_headers, other_headers, owner_headers, employee_services):
    """Two employees of one business can be booked at the same time."""
    first, second = employee_services

    resp = await client.post("/api/business-owner-appointments", headers=customer_headers, json=_slot_payload(first, "09:00", "10:00"))
    assert resp.status_code == 201
    appointment_id = resp.json()["data"]["id"]
    assert resp.json()["data"]["total_amount"] == 40

    resp = await client.post("/api/business-owner-appointments", headers=other_headers, json=_slot_payload(second, "09:00", "10:00"))
    assert resp.status_code == 201

    resp = await client.post("/api/business-owner-appointments", headers=other_headers, json=_slot_payload(first, "09:30", "10:30"))
    assert resp.status_code == 409
    assert await _count(db, BusinessOwnerAppointment) == 2

    session = MagicMock(id="cs_bo", url="https://checkout.stripe.com/c/pay/cs_bo")
    with patch("stripe.checkout.Session.create", return_value=session) as mock_create:
        resp = await client.patch(f"/api/business-owners/appointments/{appointment_id}/accept", headers=owner_headers)
    assert resp.status_code == 200
    metadata = mock_create.call_args.kwargs["metadata"]
    assert metadata["businessOwnerAppointmentId"] == appointment_id
    assert "businessOwnerId" in metadata


@pytest.mark.asyncio
async def test_provider_cannot_manage_other_channel(client, provider_headers, customer_headers, employee_services):
    resp = await client.post(
        "/api/business-owner-appointments",
        headers=customer_headers,
        json=_slot_payload(employee_services[0], "09:00", "10:00"),
    )
    appointment_id = resp.json()["data"]["id"]

    resp = await client.patch(f"/api/business-owners/appointments/{appointment_id}/accept", headers=provider_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_reaccept_after_user_reschedule_does_not_charge_again(
    client, db, customer_headers, provider_headers, make_appointment,
):
    """A paid appointment moved by the user is confirmed again without a new checkout."""
    appointment = await make_appointment("09:00", "10:00", status="confirmed")
    appointment.payment_intent_id = "pi_paid"
    appointment.payment_intent_status = "succeeded"
    appointment.payment_status = "completed"
    await db.commit()

    resp = await client.patch(
        f"/api/appointments/{appointment.id}/reschedule",
        headers=customer_headers,
        json={"appointment_date": "2030-01-16", "time_slot": {"start_time": "11:00", "end_time": "12:00"}},
    )
    assert resp.json()["data"]["appointment_status"] == "pending"

    with patch("stripe.checkout.Session.create") as mock_create:
        resp = await client.patch(f"/api/providers/appointments/{appointment.id}/accept", headers=provider_headers)
    assert resp.status_code == 200
    mock_create.assert_not_called()

    data = resp.json()["data"]
    assert data["appointment"]["appointment_status"] == "confirmed"
    assert data["appointment"]["payment_status"] == "completed"
    assert data["appointment"]["payment_intent_status"] == "succeeded"
    assert data["checkout"]["session_url"] is None


@pytest.mark.asyncio
async def test_slot_earlier_today_is_rejected(client, db, customer_headers, slot_service):
    with patch("app.services.appointments.utcnow", return_value=datetime(2030, 1, 15, 14, 30)):
        resp = await client.post(
            "/api/appointments",
            headers=customer_headers,
            json=_slot_payload(slot_service, "12:00", "13:00"),
        )
        assert resp.status_code == 400
        assert await _count(db) == 0

        resp = await client.post(
            "/api/appointments",
            headers=customer_headers,
            json=_slot_payload(slot_service, "15:00", "16:00"),
        )
        assert resp.status_code == 201


@pytest.mark.asyncio
async def test_reschedule_to_earlier_today_is_rejected(client, db, provider_headers, make_appointment):
    appointment = await make_appointment("16:00", "17:00", status="confirmed")

    with patch("app.services.appointments.utcnow", return_value=datetime(2030, 1, 15, 14, 30)):
        resp = await client.patch(
            f"/api/providers/appointments/{appointment.id}/reschedule",
            headers=provider_headers,
            json={"appointment_date": "2030-01-15", "time_slot": {"start_time": "13:00", "end_time": "14:00"}},
        )
    assert resp.status_code == 400

    await db.refresh(appointment)
    assert appointment.start_time == "16:00"
