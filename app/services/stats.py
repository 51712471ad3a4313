"""Owner dashboard queries: stats, upcoming schedule, orders feed and activity feed."""

import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationFailed
from app.core.money import round_money
from app.models.appointment import ACTIVE_APPOINTMENT_STATUSES
from app.models.booking import SETTLED_PAYMENT_STATUSES
from app.services.channels import Channel
from app.services.timeslots import combine, day_bounds, month_bounds, utcnow

logger = logging.getLogger(__name__)

UPCOMING_BOOKING_STATUSES = ("pending", "confirmed", "in_progress")
ACTIVE_ORDER_STATUSES = ("pending", "confirmed", "in_progress")
CANCELLED_STATUSES = ("cancelled", "rejected", "no_show")


def percent_change(current: float, previous: float) -> int:
    """Month-over-month growth in whole percent."""
    if previous == 0:
        return 0 if current == 0 else 100
    return round((current - previous) / previous * 100)


def _status_column(model):
    return model.booking_status if model.kind == "booking" else model.appointment_status


async def _count(db: AsyncSession, model, *criteria) -> int:
    result = await db.execute(select(func.count(model.id)).where(*criteria))
    return int(result.scalar() or 0)


async def _income(db: AsyncSession, model, *criteria) -> float:
    result = await db.execute(
        select(func.coalesce(func.sum(model.total_amount), 0)).where(
            model.payment_status.in_(SETTLED_PAYMENT_STATUSES), *criteria
        )
    )
    return float(result.scalar() or 0)


async def owner_stats(db: AsyncSession, channel: Channel, owner_id) -> dict:
    now = utcnow()
    this_month_start, _ = month_bounds(now)
    prev_month_start, prev_month_end = month_bounds(now, months_back=1)
    today_start, today_end = day_bounds(now)

    models = (channel.booking_model, channel.appointment_model)
    orders = {"total": 0, "this_month": 0, "previous_month": 0, "active": 0, "pending_requests": 0, "completed": 0}
    income = {"total": 0.0, "this_month": 0.0, "previous_month": 0.0}
    by_status: dict[str, dict[str, int]] = {}

    for model in models:
        owner = getattr(model, channel.owner_field) == owner_id
        status = _status_column(model)
        this_month = model.created_at >= this_month_start
        prev_month = (model.created_at >= prev_month_start) & (model.created_at < prev_month_end)

        orders["total"] += await _count(db, model, owner)
        orders["this_month"] += await _count(db, model, owner, this_month)
        orders["previous_month"] += await _count(db, model, owner, prev_month)
        orders["active"] += await _count(db, model, owner, status.in_(ACTIVE_ORDER_STATUSES))
        orders["pending_requests"] += await _count(db, model, owner, status == "pending")
        orders["completed"] += await _count(db, model, owner, status == "completed")

        income["total"] += await _income(db, model, owner)
        income["this_month"] += await _income(db, model, owner, this_month)
        income["previous_month"] += await _income(db, model, owner, prev_month)

        result = await db.execute(select(status, func.count(model.id)).where(owner).group_by(status))
        by_status[f"{model.kind}s"] = {row[0]: int(row[1]) for row in result.all()}

    appointment_model = channel.appointment_model
    today_appointments = await _count(
        db,
        appointment_model,
        getattr(appointment_model, channel.owner_field) == owner_id,
        appointment_model.appointment_date == today_start.date(),
        appointment_model.appointment_status.in_(ACTIVE_APPOINTMENT_STATUSES),
    )

    return {
        "orders": orders,
        "income": {key: round_money(value) for key, value in income.items()},
        "by_status": by_status,
        "today_appointments": today_appointments,
        "pending_requests": orders["pending_requests"],
        "completed_jobs": orders["completed"],
        "growth": {
            "orders": percent_change(orders["this_month"], orders["previous_month"]),
            "income": percent_change(income["this_month"], income["previous_month"]),
        },
    }


def _order_item(record, scheduled_at: Optional[datetime] = None) -> dict:
    snapshot = record.service_snapshot or {}
    item = {
        "id": record.id,
        "type": record.kind,
        "user_id": record.user_id,
        "status": record.status,
        "payment_status": record.payment_status,
        "total_amount": record.total_amount,
        "service_name": snapshot.get("service_name") or "Service",
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }
    if record.kind == "booking":
        item["scheduled_at"] = scheduled_at or record.booking_date
    else:
        item["scheduled_at"] = scheduled_at or combine(record.appointment_date, record.start_time)
        item["appointment_date"] = record.appointment_date
        item["start_time"] = record.start_time
        item["end_time"] = record.end_time
    return item


async def upcoming_schedule(db: AsyncSession, channel: Channel, owner_id, limit: int = 20) -> list[dict]:
    """Bookings and appointments still ahead, soonest first."""
    now = utcnow()
    booking_model, appointment_model = channel.booking_model, channel.appointment_model

    bookings = await db.execute(
        select(booking_model)
        .where(
            getattr(booking_model, channel.owner_field) == owner_id,
            booking_model.booking_date >= now,
            booking_model.booking_status.in_(UPCOMING_BOOKING_STATUSES),
        )
        .order_by(booking_model.booking_date)
        .limit(limit)
    )
    appointments = await db.execute(
        select(appointment_model)
        .where(
            getattr(appointment_model, channel.owner_field) == owner_id,
            appointment_model.appointment_date >= now.date(),
            appointment_model.appointment_status.in_(ACTIVE_APPOINTMENT_STATUSES),
        )
        .order_by(appointment_model.appointment_date, appointment_model.start_time)
        .limit(limit)
    )

    items = [_order_item(b) for b in bookings.scalars().all()]
    for appointment in appointments.scalars().all():
        scheduled_at = combine(appointment.appointment_date, appointment.start_time)
        if scheduled_at >= now:
            items.append(_order_item(appointment, scheduled_at))

    items.sort(key=lambda item: item["scheduled_at"])
    return items[:limit]


async def orders_feed(
    db: AsyncSession,
    channel: Channel,
    owner_id,
    status: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> list[dict]:
    """Newest orders first across bookings and appointments."""
    items = []
    for model in (channel.booking_model, channel.appointment_model):
        query = select(model).where(getattr(model, channel.owner_field) == owner_id)
        if status:
            query = query.where(_status_column(model) == status)
        result = await db.execute(query.order_by(model.created_at.desc()).limit(limit + offset))
        items.extend(_order_item(record) for record in result.scalars().all())

    items.sort(key=lambda item: item["created_at"], reverse=True)
    return items[offset:offset + limit]


def resolve_activity(status: str, payment_status: str) -> str:
    if payment_status in SETTLED_PAYMENT_STATUSES:
        return "payment_received"
    if status == "completed":
        return "order_completed"
    if status in CANCELLED_STATUSES:
        return "order_canceled"
    return "new_booking_received"


async def activity_feed(
    db: AsyncSession,
    channel: Channel,
    owner_id,
    range_filter: str = "all",
    status_filter: str = "all",
    limit: int = 20,
) -> list[dict]:
    now = utcnow()
    if range_filter == "today":
        since = day_bounds(now)[0]
    elif range_filter == "week":
        since = now - timedelta(days=7)
    elif range_filter == "month":
        since = month_bounds(now)[0]
    elif range_filter == "all":
        since = None
    else:
        raise ValidationFailed("Invalid range filter. Use today, week, month, or all.")

    if status_filter not in ("all", "completed", "cancelled"):
        raise ValidationFailed("Invalid status filter. Use all, completed, or cancelled.")

    items = []
    for model in (channel.booking_model, channel.appointment_model):
        status = _status_column(model)
        query = select(model).where(getattr(model, channel.owner_field) == owner_id)
        if since is not None:
            query = query.where(model.updated_at >= since)
        if status_filter == "completed":
            query = query.where(status == "completed")
        elif status_filter == "cancelled":
            query = query.where(status.in_(CANCELLED_STATUSES))
        result = await db.execute(query.order_by(model.updated_at.desc()).limit(limit))

        for record in result.scalars().all():
            item = _order_item(record)
            item["activity"] = resolve_activity(record.status, record.payment_status)
            item["hours_ago"] = int((now - record.updated_at).total_seconds() // 3600) if record.updated_at else None
            items.append(item)

    items.sort(key=lambda item: item["updated_at"], reverse=True)
    return items[:limit]
