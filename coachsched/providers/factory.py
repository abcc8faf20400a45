"""
Provider Factory

Builds the right provider for a coach from the stored connection.
"""

from collections.abc import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coachsched.models.booking import MeetingPlatform
from coachsched.models.provider_connection import ProviderConnection, ProviderName
from coachsched.providers.base import SchedulingProvider
from coachsched.providers.google import GoogleCalendarProvider
from coachsched.providers.teams import TeamsProvider
from coachsched.providers.zoom import ZoomProvider

_PROVIDER_CLASSES: dict[str, type[SchedulingProvider]] = {
    ProviderName.GOOGLE.value: GoogleCalendarProvider,
    ProviderName.ZOOM.value: ZoomProvider,
    ProviderName.MICROSOFT.value: TeamsProvider,
}

PLATFORM_PROVIDERS: dict[str, str] = {
    MeetingPlatform.GOOGLE_MEET.value: ProviderName.GOOGLE.value,
    MeetingPlatform.ZOOM.value: ProviderName.ZOOM.value,
    MeetingPlatform.TEAMS.value: ProviderName.MICROSOFT.value,
}

# Provider that serves the coach's busy calendar feed
CALENDAR_PROVIDER = ProviderName.GOOGLE.value

ProviderLoader = Callable[[AsyncSession, int, str], Awaitable[SchedulingProvider]]


def get_provider_class(provider: str) -> type[SchedulingProvider]:
    try:
        return _PROVIDER_CLASSES[ProviderName(provider).value]
    except ValueError:
        raise ValueError(f"Unsupported provider: {provider}") from None


async def load_provider(
    session: AsyncSession, coach_id: int, provider: str
) -> SchedulingProvider:
    """Provider for `coach_id`. Without a stored connection it reports not_connected."""
    cls = get_provider_class(provider)
    provider = ProviderName(provider).value
    result = await session.execute(
        select(ProviderConnection).where(
            ProviderConnection.coach_id == coach_id,
            ProviderConnection.provider == provider,
        )
    )
    return cls(result.scalar_one_or_none())


async def load_meeting_provider(
    session: AsyncSession,
    coach_id: int,
    platform: str,
    loader: ProviderLoader = load_provider,
) -> SchedulingProvider | None:
    """Provider behind a meeting platform; None for `none`."""
    provider = PLATFORM_PROVIDERS.get(MeetingPlatform(platform).value)
    if provider is None:
        return None
    return await loader(session, coach_id, provider)
