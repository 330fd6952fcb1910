"""Counter payment API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import ensure_family_access, get_current_admin, get_current_user
from app.models.user import User
from app.schemas.payment import (
    PaymentCreate,
    PaymentRecordResponse,
    PaymentResponse,
    PaymentUndo,
)
from app.services.payment_service import PaymentService
from core.db import get_db
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", response_model=PaymentRecordResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    data: PaymentCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> PaymentRecordResponse:
    """
    Record a counter payment for a family (admin only).

    With an enrolment the payment buys coverage: weekly plans extend the
    paid-through date, block plans add credits. Repeating a request with
    the same idempotency key returns the original payment.
    """
    result = await PaymentService(db_session).record_payment(
        family_id=data.family_id,
        amount_cents=data.amount_cents,
        enrolment_id=data.enrolment_id,
        idempotency_key=data.idempotency_key or idempotency_key,
        custom_block_length=data.custom_block_length,
        paid_at=data.paid_at,
        method=data.method,
        note=data.note,
        actor_id=current_user.id,
    )
    return PaymentRecordResponse(
        payment=PaymentResponse.model_validate(result.payment),
        receipt_invoice_id=result.receipt_invoice_id,
        replayed=result.replayed,
    )


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: str,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    payment = await PaymentService(db_session).get_payment(payment_id)
    ensure_family_access(current_user, payment.family_id)
    return PaymentResponse.model_validate(payment)


@router.post("/{payment_id}/undo", response_model=PaymentResponse)
async def undo_payment(
    payment_id: str,
    data: Optional[PaymentUndo] = None,
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    """Void a payment and rebuild the entitlement it paid for. Undoing twice is a no-op."""
    payment = await PaymentService(db_session).undo_payment(
        payment_id,
        reason=data.reason if data else None,
        actor_id=current_user.id,
    )
    logger.info(f"Payment {payment_id} undone by {current_user.id}")
    return PaymentResponse.model_validate(payment)
