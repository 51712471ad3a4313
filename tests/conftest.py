"""Shared test fixtures for the marketplace API tests.

Uses an in-memory SQLite async engine so tests run without PostgreSQL.
Settings are read at import time, so the environment is prepared first.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STRIPE_API_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_CHECKOUT_SUCCESS_URL"] = "https://example.com/success"
os.environ["STRIPE_CHECKOUT_CANCEL_URL"] = "https://example.com/cancel"

import hashlib
import hmac
import json
import time
import uuid
from datetime import date, datetime

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.main import app
from app.models.appointment import Appointment
from app.models.booking import Booking
from app.models.event import Event, EventManager, EventStatus
from app.models.provider import BusinessOwner, Employee, Provider
from app.models.refund_log import PaymentRefundLog  # noqa: F401
from app.models.service import EmployeeService, Service
from app.models.stripe_event import ProcessedStripeEvent  # noqa: F401
from app.models.user import User, UserRole
from app.services.auth import create_access_token

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
APPOINTMENT_DAY = date(2030, 1, 15)
HOURLY_SLOT = {"slot_id": "A", "duration": 60, "duration_unit": "minutes", "price": 50}


@pytest_asyncio.fixture(autouse=True)
async def session_factory():
    """Fresh database per test; requests and assertions share it."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSession = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession

    app.dependency_overrides.pop(get_db, None)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client():
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db(session_factory):
    """Direct DB session for test setup/assertions."""
    async with session_factory() as session:
        yield session


def auth_headers(user_id) -> dict:
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


async def _user(db, email: str, role: str = UserRole.USER.value) -> User:
    user = User(email=email, full_name=email.split("@")[0].title(), role=role, is_active=True)
    db.add(user)
    await db.commit()
    return user


# ============================================================================
# ACTORS
# ============================================================================

@pytest_asyncio.fixture
async def customer(db):
    return await _user(db, "customer@example.com")


@pytest_asyncio.fixture
async def other_customer(db):
    return await _user(db, "other@example.com")


@pytest_asyncio.fixture
async def admin(db):
    return await _user(db, "admin@example.com", UserRole.ADMIN.value)


@pytest_asyncio.fixture
async def provider(db):
    user = await _user(db, "provider@example.com", UserRole.PROVIDER.value)
    provider = Provider(user_id=user.id, display_name="Pat's Plumbing")
    db.add(provider)
    await db.commit()
    return provider


@pytest_asyncio.fixture
async def business_owner(db):
    user = await _user(db, "owner@example.com", UserRole.BUSINESS_OWNER.value)
    owner = BusinessOwner(user_id=user.id, business_name="Shear Studio")
    db.add(owner)
    await db.commit()
    return owner


@pytest_asyncio.fixture
async def customer_headers(customer):
    return auth_headers(customer.id)


@pytest_asyncio.fixture
async def other_headers(other_customer):
    return auth_headers(other_customer.id)


@pytest_asyncio.fixture
async def provider_headers(provider):
    return auth_headers(provider.user_id)


@pytest_asyncio.fixture
async def owner_headers(business_owner):
    return auth_headers(business_owner.user_id)


@pytest_asyncio.fixture
async def admin_headers(admin):
    return auth_headers(admin.id)


# ============================================================================
# CATALOG
# ============================================================================

@pytest_asyncio.fixture
async def booking_service(db, provider):
    """Provider service sold as a plain booking (no slots)."""
    service = Service(
        provider_id=provider.id,
        headline="Pipe repair",
        category="plumbing",
        base_price=100,
        appointment_enabled=False,
        appointment_slots=[],
    )
    db.add(service)
    await db.commit()
    return service


@pytest_asyncio.fixture
async def slot_service(db, provider):
    """Provider service sold by appointment with a single one-hour slot."""
    service = Service(
        provider_id=provider.id,
        headline="Boiler check",
        category="heating",
        base_price=0,
        appointment_enabled=True,
        appointment_slots=[dict(HOURLY_SLOT)],
    )
    db.add(service)
    await db.commit()
    return service


@pytest_asyncio.fixture
async def employee_services(db, business_owner):
    """Two appointment services of the same business, each with its own employee."""
    services = []
    for name in ("Alex", "Sam"):
        employee = Employee(business_owner_id=business_owner.id, full_name=name)
        db.add(employee)
        await db.flush()
        service = EmployeeService(
            business_owner_id=business_owner.id,
            employee_id=employee.id,
            headline=f"Haircut with {name}",
            categories=["hair"],
            base_price=0,
            appointment_enabled=True,
            appointment_slots=[{"slot_id": "cut", "duration": 1, "duration_unit": "hours", "price": 40}],
        )
        db.add(service)
        services.append(service)
    await db.commit()
    return services


@pytest_asyncio.fixture
async def make_appointment(db, customer, provider, slot_service):
    """Insert an appointment on ``slot_service`` directly."""
    async def _make(start_time, end_time, status="confirmed", user=None, day=APPOINTMENT_DAY):
        appointment = Appointment(
            user_id=(user or customer).id,
            service_id=slot_service.id,
            provider_id=provider.id,
            slot_owner_id=provider.id,
            appointment_date=day,
            start_time=start_time,
            end_time=end_time,
            selected_slot=dict(HOURLY_SLOT),
            service_snapshot={"service_name": slot_service.headline, "category": "heating"},
            total_amount=50,
            appointment_status=status,
        )
        db.add(appointment)
        await db.commit()
        return appointment

    return _make


@pytest_asyncio.fixture
async def make_booking(db, customer, provider, booking_service):
    """Insert a booking on ``booking_service`` directly."""
    async def _make(status="pending", down_payment=30, **fields):
        booking = Booking(
            user_id=customer.id,
            service_id=booking_service.id,
            provider_id=provider.id,
            booking_date=fields.pop("booking_date", datetime(2030, 6, 1, 10, 0)),
            service_snapshot={"service_name": booking_service.headline, "base_price": 100.0, "category": "plumbing"},
            total_amount=100,
            down_payment=down_payment,
            booking_status=status,
            **fields,
        )
        db.add(booking)
        await db.commit()
        return booking

    return _make


@pytest_asyncio.fixture
async def ticketed_event(db):
    """Published event with 10 seats, 8 already sold."""
    user = await _user(db, "events@example.com", UserRole.EVENT_MANAGER.value)
    manager = EventManager(user_id=user.id, organization_name="Night Owls")
    db.add(manager)
    await db.flush()
    event = Event(
        event_manager_id=manager.id,
        event_name="Jazz on the Roof",
        maximum_number_of_tickets=10,
        tickets_sold=8,
        ticket_price=25,
        status=EventStatus.PUBLISHED.value,
    )
    db.add(event)
    await db.commit()
    return event


# ============================================================================
# STRIPE WEBHOOKS
# ============================================================================

def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs deliveries."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest_asyncio.fixture
async def post_signed(client):
    """Post a raw body to the webhook endpoint with a valid signature."""
    async def _post(payload: str):
        return await client.post(
            "/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": stripe_signature(payload), "content-type": "application/json"},
        )

    return _post


@pytest_asyncio.fixture
async def send_event(post_signed):
    """Post a signed Stripe event to the webhook endpoint."""
    async def _send(event_type: str, obj: dict, event_id: str = None):
        payload = json.dumps({
            "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        })
        return await post_signed(payload)

    return _send
