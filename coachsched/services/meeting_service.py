"""
Meeting Orchestration

Runs once after a booking is committed: creates the video meeting at the
selected provider and writes the join link back onto the booking. Any failure
is reported in the result; the booking itself is never rolled back.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coachsched.core.config import settings
from coachsched.core.errors import ProviderNotConnected, ProviderUnavailable
from coachsched.models.booking import Booking, MeetingPlatform
from coachsched.models.user import User
from coachsched.providers.base import MeetingDetails, SchedulingProvider
from coachsched.services.booking_service import get_booking
from coachsched.services.notification_service import booking_recipients

logger = logging.getLogger(__name__)


class OrchestrationStatus(str, Enum):
    SKIPPED = "skipped"
    ATTACHED = "attached"
    NOT_CONNECTED = "not_connected"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    # Meeting exists at the provider but the link could not be saved; retry the write only
    ATTACH_FAILED = "attach_failed"


@dataclass(frozen=True)
class OrchestrationResult:
    booking_id: int
    platform: str
    status: OrchestrationStatus
    join_link: str | None = None
    external_meeting_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (OrchestrationStatus.SKIPPED, OrchestrationStatus.ATTACHED)


async def attendee_emails(session: AsyncSession, booking: Booking) -> list[str]:
    """Coach plus the client, or coach plus every group member."""
    user_ids = await booking_recipients(session, booking)
    result = await session.execute(select(User.id, User.email).where(User.id.in_(user_ids)))
    emails = {uid: email for uid, email in result.all()}
    return list(dict.fromkeys(emails[uid] for uid in user_ids if emails.get(uid)))


async def attach_link(
    session_maker: async_sessionmaker[AsyncSession],
    booking_id: int,
    platform: str,
    join_link: str,
    external_meeting_id: str | None = None,
) -> Booking:
    """Write a meeting link onto a booking. Also the retry path after ATTACH_FAILED."""
    async with session_maker() as session:
        async with session.begin():
            booking = await get_booking(session, booking_id)
            booking.meeting_platform = MeetingPlatform(platform).value
            booking.meeting_link = join_link
            booking.external_meeting_id = external_meeting_id
            booking.updated_at = datetime.now(UTC).replace(tzinfo=None)
            session.add(booking)
    return booking


async def attach_meeting(
    session_maker: async_sessionmaker[AsyncSession],
    booking_id: int,
    platform: MeetingPlatform | str,
    provider: SchedulingProvider | None,
    timeout: float | None = None,
) -> OrchestrationResult:
    platform = MeetingPlatform(platform).value
    timeout = settings.provider_timeout_seconds if timeout is None else timeout

    async with session_maker() as session:
        booking = await get_booking(session, booking_id)
        if platform == MeetingPlatform.NONE.value:
            return OrchestrationResult(booking_id, platform, OrchestrationStatus.SKIPPED)
        if provider is None or not provider.is_connected:
            status = provider.connection_status().value if provider else "missing"
            logger.warning(
                "Booking %s: %s selected but provider is %s; keeping booking without a link",
                booking_id,
                platform,
                status,
            )
            return OrchestrationResult(
                booking_id,
                platform,
                OrchestrationStatus.NOT_CONNECTED,
                error=f"{platform} is not connected ({status})",
            )
        emails = await attendee_emails(session, booking)
        details = MeetingDetails(
            booking_id=booking.id,
            title=booking.title,
            starts_at=booking.starts_at_utc,
            duration_minutes=booking.duration_minutes,
            timezone=booking.origin_timezone,
            description=booking.description,
        )

    try:
        meeting = await asyncio.wait_for(provider.create_meeting(details, emails), timeout)
    except TimeoutError:
        logger.warning("Booking %s: %s create_meeting timed out after %.1fs", booking_id, platform, timeout)
        return OrchestrationResult(
            booking_id,
            platform,
            OrchestrationStatus.PROVIDER_UNAVAILABLE,
            error=f"{platform} did not respond within {timeout:g}s",
        )
    except ProviderNotConnected as e:
        logger.warning("Booking %s: %s", booking_id, e)
        return OrchestrationResult(booking_id, platform, OrchestrationStatus.NOT_CONNECTED, error=str(e))
    except (ProviderUnavailable, httpx.HTTPError) as e:
        logger.warning("Booking %s: %s create_meeting failed: %s", booking_id, platform, e)
        return OrchestrationResult(
            booking_id, platform, OrchestrationStatus.PROVIDER_UNAVAILABLE, error=str(e)
        )

    try:
        await attach_link(
            session_maker, booking_id, platform, meeting.join_link, meeting.external_meeting_id
        )
    except SQLAlchemyError as e:
        logger.exception("Booking %s: meeting %s created but link not saved", booking_id, meeting.external_meeting_id)
        return OrchestrationResult(
            booking_id,
            platform,
            OrchestrationStatus.ATTACH_FAILED,
            join_link=meeting.join_link,
            external_meeting_id=meeting.external_meeting_id,
            error=f"{type(e).__name__}: {e}",
        )
    logger.info("Booking %s: %s meeting %s attached", booking_id, platform, meeting.external_meeting_id)
    return OrchestrationResult(
        booking_id,
        platform,
        OrchestrationStatus.ATTACHED,
        join_link=meeting.join_link,
        external_meeting_id=meeting.external_meeting_id,
    )
