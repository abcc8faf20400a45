import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coachsched.api.deps import (
    get_booking_committer,
    get_current_user,
    get_notifier,
    get_provider_loader,
    get_session,
)
from coachsched.api.schemas.booking import (
    AttachMeetingRequest,
    ConflictReportResponse,
    MeetingLinkRequest,
    OrchestrationResponse,
)
from coachsched.core.db import get_session_maker
from coachsched.models.booking import BookingPublic
from coachsched.models.user import User
from coachsched.providers.factory import ProviderLoader, load_meeting_provider
from coachsched.services.booking_service import BookingCommitter, BookingRequest, get_booking
from coachsched.services.meeting_service import attach_link, attach_meeting
from coachsched.services.notification_service import Notifier, fan_out_booking_notifications

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    response_model=BookingPublic,
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_409_CONFLICT: {"model": ConflictReportResponse}},
)
async def create_booking(
    body: BookingRequest,
    background_tasks: BackgroundTasks,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    committer: BookingCommitter = Depends(get_booking_committer),
    notifier: Notifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    booking = await committer.commit(session_maker, body)
    # Fan-out after the response; its outcome never affects the booking
    background_tasks.add_task(fan_out_booking_notifications, session_maker, booking.id, notifier)
    return booking


@router.get("/{booking_id}", response_model=BookingPublic)
async def read_booking(
    booking_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await get_booking(session, booking_id)


@router.post("/{booking_id}/meeting", response_model=OrchestrationResponse)
async def create_booking_meeting(
    booking_id: int,
    body: AttachMeetingRequest | None = None,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    loader: ProviderLoader = Depends(get_provider_loader),
    current_user: User = Depends(get_current_user),
) -> OrchestrationResponse:
    async with session_maker() as session:
        booking = await get_booking(session, booking_id)
        platform = body.platform.value if body and body.platform else booking.meeting_platform
        provider = await load_meeting_provider(session, booking.coach_id, platform, loader=loader)
    result = await attach_meeting(session_maker, booking_id, platform, provider)
    return OrchestrationResponse.from_result(result)


@router.put("/{booking_id}/meeting-link", response_model=BookingPublic)
async def save_meeting_link(
    booking_id: int,
    body: MeetingLinkRequest,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    current_user: User = Depends(get_current_user),
):
    """Write a link for a meeting that already exists at the provider."""
    booking = await attach_link(
        session_maker, booking_id, body.platform.value, body.join_link, body.external_meeting_id
    )
    logger.info("Booking %s: meeting link saved by user %s", booking_id, current_user.id)
    return booking
