"""
Availability Service

Filters the fixed slot catalog down to the start times a coach can still take
on one local date, reconciling internal bookings with the coach's external
calendar. The result is advisory: the commit step re-validates.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from enum import Enum

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coachsched.core.config import settings
from coachsched.core.errors import InputError, ProviderUnavailable
from coachsched.models.booking import FREEING_STATUSES, Booking
from coachsched.providers.base import SchedulingProvider
from coachsched.services.busy_intervals import (
    BusyInterval,
    ExternalCalendarEvent,
    aggregate_busy_intervals,
)
from coachsched.services.conflicts import overlaps
from coachsched.services.timeslots import CandidateSlot, generate_time_slots, minute_of_day
from coachsched.services.timezone_service import is_valid_zone

logger = logging.getLogger(__name__)


class CalendarStatus(str, Enum):
    CONNECTED = "connected"
    NOT_CONNECTED = "not_connected"
    UNAVAILABLE = "unavailable"


@dataclass
class AvailabilityResult:
    date: date
    timezone: str
    duration_minutes: int
    slots: list[CandidateSlot] = field(default_factory=list)
    busy: list[BusyInterval] = field(default_factory=list)
    calendar_status: CalendarStatus = CalendarStatus.NOT_CONNECTED
    low_confidence: bool = False
    selected: time | None = None
    selection_cleared: bool = False


def validate_duration(duration_minutes: int) -> None:
    if not settings.min_session_minutes <= duration_minutes <= settings.max_session_minutes:
        raise InputError(
            f"Duration must be between {settings.min_session_minutes} and "
            f"{settings.max_session_minutes} minutes"
        )


def validate_zone(zone: str) -> None:
    if not is_valid_zone(zone):
        raise InputError(f"Unknown timezone: {zone!r}")


def available_slots(
    candidates: Sequence[time],
    busy_intervals: Sequence[BusyInterval],
    duration_minutes: int,
) -> list[CandidateSlot]:
    return [
        CandidateSlot(start, duration_minutes)
        for start in candidates
        if not overlaps(minute_of_day(start), duration_minutes, busy_intervals)
    ]


def reconcile_selection(selected: time | None, slots: Sequence[CandidateSlot]) -> time | None:
    """Keep a form's selected start time only while it is still offered."""
    if selected is None:
        return None
    if any(s.start == selected for s in slots):
        return selected
    return None


async def get_active_bookings_near(
    session: AsyncSession, coach_id: int, target_date: date
) -> list[Booking]:
    """Bookings that still occupy time, in a UTC window wide enough to cover
    every local day adjacent to `target_date` (offsets span -12h..+14h)."""
    result = await session.execute(
        select(Booking)
        .where(
            Booking.coach_id == coach_id,
            Booking.session_date >= target_date - timedelta(days=2),
            Booking.session_date <= target_date + timedelta(days=2),
            Booking.status.not_in(FREEING_STATUSES),
        )
        .order_by(Booking.session_date, Booking.session_time)
    )
    return list(result.scalars().all())


async def fetch_busy_events(
    calendar: SchedulingProvider | None,
    target_date: date,
    zone: str,
    timeout: float,
) -> tuple[list[ExternalCalendarEvent], CalendarStatus]:
    """Best-effort read of the external calendar; never raises."""
    if calendar is None or not calendar.is_connected:
        return [], CalendarStatus.NOT_CONNECTED
    try:
        events = await asyncio.wait_for(calendar.list_busy_events(target_date, zone), timeout)
    except TimeoutError:
        logger.warning("Calendar feed %s timed out after %.1fs", calendar.name, timeout)
        return [], CalendarStatus.UNAVAILABLE
    except (ProviderUnavailable, httpx.HTTPError) as e:
        logger.warning("Calendar feed %s unavailable: %s", calendar.name, e)
        return [], CalendarStatus.UNAVAILABLE
    return list(events), CalendarStatus.CONNECTED


async def get_availability(
    session: AsyncSession,
    coach_id: int,
    target_date: date,
    duration_minutes: int,
    zone: str,
    calendar: SchedulingProvider | None = None,
    selected: time | None = None,
    timeout: float | None = None,
) -> AvailabilityResult:
    validate_duration(duration_minutes)
    validate_zone(zone)

    bookings = await get_active_bookings_near(session, coach_id, target_date)
    events, calendar_status = await fetch_busy_events(
        calendar,
        target_date,
        zone,
        settings.provider_timeout_seconds if timeout is None else timeout,
    )
    busy = aggregate_busy_intervals(target_date, zone, bookings, events)
    slots = available_slots(generate_time_slots(), busy, duration_minutes)
    kept = reconcile_selection(selected, slots)
    return AvailabilityResult(
        date=target_date,
        timezone=zone,
        duration_minutes=duration_minutes,
        slots=slots,
        busy=busy,
        calendar_status=calendar_status,
        low_confidence=calendar_status == CalendarStatus.UNAVAILABLE,
        selected=kept,
        selection_cleared=selected is not None and kept is None,
    )
