"""Admin-only endpoints.

All routes require the admin role.
"""

import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from app.api.v1.responses import ok
from app.core.database import get_db
from app.core.deps import require_admin
from app.models.refund_log import PaymentRefundLog
from app.models.user import User
from app.schemas.refund import RefundCreate, RefundLogOut
from app.services.refunds import request_refund

router = APIRouter()
logger = logging.getLogger(__name__)


# ============================================================================
# REFUNDS
# ============================================================================

@router.post("/refunds", status_code=201)
async def create_refund(
    payload: RefundCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Refund a captured payment; Stripe's refund events keep the log up to date."""
    log = await request_refund(
        db,
        payload.source_model,
        payload.source_id,
        payment_field=payload.source_payment_field,
        amount=payload.amount,
        reason=payload.reason,
        note=payload.note,
        admin_id=admin.id,
    )
    logger.info("Admin %s refunded %s %s (%s)", admin.id, payload.source_model, payload.source_id, log.status)
    return ok(RefundLogOut.model_validate(log), "Refund requested")


@router.get("/refunds")
async def list_refunds(
    payment_intent_id: Optional[str] = None,
    source_id: Optional[UUID] = None,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    query = select(PaymentRefundLog)
    if payment_intent_id:
        query = query.where(PaymentRefundLog.payment_intent_id == payment_intent_id)
    if source_id:
        query = query.where(PaymentRefundLog.source_id == source_id)
    if status:
        query = query.where(PaymentRefundLog.status == status)
    result = await db.execute(query.order_by(desc(PaymentRefundLog.created_at)).limit(limit))
    return ok([RefundLogOut.model_validate(log) for log in result.scalars().all()])
