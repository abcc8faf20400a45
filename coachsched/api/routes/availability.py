from datetime import date, time

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coachsched.api.deps import get_current_user, get_provider_loader, get_session
from coachsched.api.schemas.availability import AvailabilityResponse
from coachsched.core.config import settings
from coachsched.models.booking import BookingPublic
from coachsched.models.user import User
from coachsched.providers.factory import CALENDAR_PROVIDER, ProviderLoader
from coachsched.services.availability_service import (
    get_availability,
    validate_duration,
    validate_zone,
)
from coachsched.services.booking_service import list_bookings_for_coach

router = APIRouter(prefix="/coaches", tags=["coaches"])


@router.get("/{coach_id}/availability", response_model=AvailabilityResponse)
async def coach_availability(
    coach_id: int,
    date_param: date = Query(..., alias="date"),
    duration: int = Query(settings.default_session_minutes),
    tz: str = Query("UTC"),
    selected: time | None = Query(None),
    session: AsyncSession = Depends(get_session),
    loader: ProviderLoader = Depends(get_provider_loader),
    current_user: User = Depends(get_current_user),
) -> AvailabilityResponse:
    """Start times on `date` (local to `tz`) at which a `duration`-minute session fits."""
    # Reject bad input before touching the provider connection
    validate_duration(duration)
    validate_zone(tz)
    calendar = await loader(session, coach_id, CALENDAR_PROVIDER)
    result = await get_availability(
        session,
        coach_id,
        date_param,
        duration,
        tz,
        calendar=calendar,
        selected=selected,
    )
    return AvailabilityResponse.from_result(result)


@router.get("/{coach_id}/bookings", response_model=list[BookingPublic])
async def coach_bookings(
    coach_id: int,
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await list_bookings_for_coach(session, coach_id, from_date, to_date)
