"""Holiday API endpoints (admin only)."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_admin
from app.models.user import User
from app.schemas.holiday import (
    HolidayCreate,
    HolidayListResponse,
    HolidayResponse,
    HolidayUpdate,
)
from app.services.holiday_service import HolidayService
from app.utils.day_keys import to_day_key
from core.db import get_db

router = APIRouter(prefix="/holidays", tags=["Holidays"])


@router.get("", response_model=HolidayListResponse)
async def list_holidays(
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> HolidayListResponse:
    holidays = await HolidayService(db_session).list_holidays()
    return HolidayListResponse(
        items=[HolidayResponse.model_validate(holiday) for holiday in holidays],
        total=len(holidays),
    )


@router.post("", response_model=HolidayResponse, status_code=status.HTTP_201_CREATED)
async def create_holiday(
    data: HolidayCreate,
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> HolidayResponse:
    """Create a holiday and remap the paid-through dates it touches."""
    holiday = await HolidayService(db_session).create_holiday(
        name=data.name,
        start_date=to_day_key(data.start_date),
        end_date=to_day_key(data.end_date),
        template_id=data.template_id,
        level_id=data.level_id,
        note=data.note,
        actor_id=current_user.id,
    )
    return HolidayResponse.model_validate(holiday)


@router.put("/{holiday_id}", response_model=HolidayResponse)
async def update_holiday(
    holiday_id: str,
    data: HolidayUpdate,
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> HolidayResponse:
    holiday = await HolidayService(db_session).update_holiday(
        holiday_id,
        name=data.name,
        start_date=to_day_key(data.start_date),
        end_date=to_day_key(data.end_date),
        template_id=data.template_id,
        level_id=data.level_id,
        note=data.note,
        actor_id=current_user.id,
    )
    return HolidayResponse.model_validate(holiday)


@router.delete("/{holiday_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_holiday(
    holiday_id: str,
    current_user: User = Depends(get_current_admin),
    db_session: AsyncSession = Depends(get_db),
) -> None:
    await HolidayService(db_session).delete_holiday(holiday_id, actor_id=current_user.id)
