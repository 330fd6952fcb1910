"""Class occurrence API endpoints (admin only)."""

from datetime import date

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_admin
from app.models.user import User
from app.schemas.class_ import (
    ClassCancellationCreate,
    ClassCancellationListResponse,
    ClassCancellationResponse,
)
from app.services.class_service import ClassService
from app.utils.day_keys import to_day_key
from core.db import get_db

router = APIRouter(prefix="/classes", tags=["Classes"])


@router.get("/{template_id}/cancellations", response_model=ClassCancellationListResponse)
async def list_cancellations(
    template_id: str,
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> ClassCancellationListResponse:
    cancellations = await ClassService(db_session).list_cancellations(template_id)
    return ClassCancellationListResponse(
        items=[ClassCancellationResponse.model_validate(item) for item in cancellations],
        total=len(cancellations),
    )


@router.post(
    "/{template_id}/cancellations",
    response_model=ClassCancellationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def cancel_occurrence(
    template_id: str,
    data: ClassCancellationCreate,
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> ClassCancellationResponse:
    """
    Cancel one occurrence of a class.

    Weekly enrolments are carried past the lost class and block enrolments
    get a credit back.
    """
    cancellation = await ClassService(db_session).cancel_class_occurrence(
        template_id,
        to_day_key(data.cancelled_on),
        reason=data.reason,
        actor_id=current_user.id,
    )
    return ClassCancellationResponse.model_validate(cancellation)


@router.delete(
    "/{template_id}/cancellations/{cancelled_on}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def restore_occurrence(
    template_id: str,
    cancelled_on: date,
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> None:
    await ClassService(db_session).restore_class_occurrence(
        template_id, to_day_key(cancelled_on), actor_id=current_user.id
    )
