"""Away period API endpoints."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import ensure_family_access, get_current_user
from app.models.away import AwayPeriod, AwayScope
from app.models.user import User
from app.schemas.away import (
    AwayPeriodCreate,
    AwayPeriodListResponse,
    AwayPeriodResponse,
    AwayPeriodUpdate,
)
from app.services.away_service import AwayService
from app.utils.day_keys import to_day_key
from core.db import get_db
from core.exceptions.base import NotFoundException
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/away-periods", tags=["Away Periods"])


async def _get_away_period(db_session: AsyncSession, away_period_id: str) -> AwayPeriod:
    away_period = await AwayPeriod.get_by_id(db_session, away_period_id)
    if not away_period:
        raise NotFoundException("Away period not found.")
    return away_period


@router.get("", response_model=AwayPeriodListResponse)
async def list_away_periods(
    family_id: str = Query(...),
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> AwayPeriodListResponse:
    ensure_family_access(current_user, family_id)
    away_periods = await AwayService(db_session).list_away_periods(family_id)
    return AwayPeriodListResponse(
        items=[AwayPeriodResponse.model_validate(item) for item in away_periods],
        total=len(away_periods),
    )


@router.post("", response_model=AwayPeriodResponse, status_code=status.HTTP_201_CREATED)
async def create_away_period(
    data: AwayPeriodCreate,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> AwayPeriodResponse:
    """Record an absence. Affected weekly enrolments have their paid-through date pushed out."""
    ensure_family_access(current_user, data.family_id)

    away_period = await AwayService(db_session).create_away_period(
        family_id=data.family_id,
        start_date=to_day_key(data.start_date),
        end_date=to_day_key(data.end_date),
        scope=AwayScope(data.scope),
        student_id=data.student_id,
        note=data.note,
        actor_id=current_user.id,
    )
    return AwayPeriodResponse.model_validate(away_period)


@router.put("/{away_period_id}", response_model=AwayPeriodResponse)
async def update_away_period(
    away_period_id: str,
    data: AwayPeriodUpdate,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> AwayPeriodResponse:
    existing = await _get_away_period(db_session, away_period_id)
    ensure_family_access(current_user, existing.family_id)

    away_period = await AwayService(db_session).update_away_period(
        away_period_id,
        family_id=existing.family_id,
        start_date=to_day_key(data.start_date),
        end_date=to_day_key(data.end_date),
        scope=AwayScope(data.scope),
        student_id=data.student_id,
        note=data.note,
        actor_id=current_user.id,
    )
    return AwayPeriodResponse.model_validate(away_period)


@router.delete("/{away_period_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_away_period(
    away_period_id: str,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> None:
    """Revert the period's shifts and soft-delete it."""
    existing = await _get_away_period(db_session, away_period_id)
    ensure_family_access(current_user, existing.family_id)
    await AwayService(db_session).delete_away_period(away_period_id, actor_id=current_user.id)
