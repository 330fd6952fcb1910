"""Enrolment billing API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import ensure_family_access, get_current_admin, get_current_user
from app.models.enrolment import Enrolment
from app.models.user import User
from app.schemas.enrolment import (
    CreditAdjustment,
    CreditBalanceResponse,
    EnrolmentBillingStatusResponse,
    EnrolmentTemplatesUpdate,
    PaidThroughChangeResponse,
    PaidThroughUpdate,
)
from app.services.credit_service import CreditService
from app.services.enrolment_service import EnrolmentService
from app.utils.day_keys import to_optional_day_key
from core.db import get_db
from core.exceptions.base import NotFoundException
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/enrolments", tags=["Enrolments"])


async def _check_enrolment_access(db_session: AsyncSession, user: User, enrolment_id: str) -> None:
    enrolment = await Enrolment.get_by_id(db_session, enrolment_id)
    if not enrolment:
        raise NotFoundException("Enrolment not found")
    ensure_family_access(user, enrolment.student.family_id)


@router.get("/{enrolment_id}/billing-status", response_model=EnrolmentBillingStatusResponse)
async def get_billing_status(
    enrolment_id: str,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> EnrolmentBillingStatusResponse:
    """Paid-through date, next payment due and remaining credits as of today."""
    await _check_enrolment_access(db_session, current_user, enrolment_id)
    snapshot = await CreditService(db_session).get_enrolment_billing_status(enrolment_id)
    return EnrolmentBillingStatusResponse.model_validate(snapshot)


@router.put("/{enrolment_id}/templates", response_model=PaidThroughChangeResponse)
async def change_templates(
    enrolment_id: str,
    data: EnrolmentTemplatesUpdate,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> PaidThroughChangeResponse:
    """Move an enrolment onto other classes, keeping what was paid for."""
    await _check_enrolment_access(db_session, current_user, enrolment_id)
    change = await EnrolmentService(db_session).change_enrolment_templates(
        enrolment_id, data.template_ids, actor_id=current_user.id
    )
    return PaidThroughChangeResponse.model_validate(change)


@router.put("/{enrolment_id}/paid-through", response_model=PaidThroughChangeResponse)
async def override_paid_through(
    enrolment_id: str,
    data: PaidThroughUpdate,
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> PaidThroughChangeResponse:
    """Admin override of the paid-through date (admin only)."""
    change = await EnrolmentService(db_session).update_paid_through_date(
        enrolment_id,
        to_optional_day_key(data.paid_through_date),
        actor_id=current_user.id,
    )
    return PaidThroughChangeResponse.model_validate(change)


@router.post("/{enrolment_id}/credits", response_model=CreditBalanceResponse)
async def adjust_credits(
    enrolment_id: str,
    data: CreditAdjustment,
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> CreditBalanceResponse:
    """Manual credit adjustment on a block enrolment (admin only)."""
    balance = await CreditService(db_session).adjust_credits(
        enrolment_id, data.credits_delta, note=data.note, actor_id=current_user.id
    )
    return CreditBalanceResponse(enrolment_id=enrolment_id, credits_remaining=balance)
