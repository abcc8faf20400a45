from datetime import date, time

import httpx
import pytest

from coachsched.core.errors import InputError, ProviderUnavailable
from coachsched.models.booking import BookingStatus
from coachsched.services.availability_service import (
    CalendarStatus,
    get_availability,
    reconcile_selection,
)
from coachsched.services.busy_intervals import ExternalCalendarEvent
from coachsched.services.timeslots import CandidateSlot

from conftest import FakeProvider, utc

pytestmark = pytest.mark.anyio

DAY = date(2024, 3, 10)


def starts(result):
    return {s.start for s in result.slots}


async def test_internal_booking_blocks_overlapping_starts(session, factory):
    coach, client = await factory.coach(), await factory.user()
    await factory.booking(coach, DAY, time(9, 0), 60, client=client)

    half_hour = await get_availability(session, coach.id, DAY, 30, "UTC")
    assert {time(8, 0), time(8, 30), time(10, 0)} <= starts(half_hour)
    assert not {time(9, 0), time(9, 30)} & starts(half_hour)

    full_hour = await get_availability(session, coach.id, DAY, 60, "UTC")
    assert {time(8, 0), time(10, 0)} <= starts(full_hour)
    assert not {time(8, 30), time(9, 0), time(9, 30)} & starts(full_hour)


async def test_booking_seen_in_viewer_zone(session, factory):
    coach, client = await factory.coach(), await factory.user()
    # 03:30 UTC is 09:00 in Kolkata
    await factory.booking(coach, DAY, time(3, 30), 60, client=client)

    result = await get_availability(session, coach.id, DAY, 30, "Asia/Kolkata")
    assert time(9, 0) not in starts(result)
    assert time(10, 0) in starts(result)
    assert time(3, 30) in starts(result)


async def test_cancelled_and_no_show_sessions_free_their_time(session, factory):
    coach, client = await factory.coach(), await factory.user()
    await factory.booking(coach, DAY, time(9, 0), client=client, status=BookingStatus.CANCELLED)
    await factory.booking(coach, DAY, time(11, 0), client=client, status=BookingStatus.NO_SHOW)
    await factory.booking(coach, DAY, time(13, 0), client=client, status=BookingStatus.COMPLETED)

    result = await get_availability(session, coach.id, DAY, 60, "UTC")
    assert {time(9, 0), time(11, 0)} <= starts(result)
    assert time(13, 0) not in starts(result)


async def test_other_coaches_do_not_block(session, factory):
    coach, other, client = await factory.coach(), await factory.coach("Other"), await factory.user()
    await factory.booking(other, DAY, time(9, 0), client=client)
    result = await get_availability(session, coach.id, DAY, 60, "UTC")
    assert len(result.slots) == 46


async def test_all_day_event_leaves_no_slots(session, factory):
    coach = await factory.coach()
    calendar = FakeProvider(events=[ExternalCalendarEvent(id="pto", title="Vacation", all_day=True)])
    result = await get_availability(session, coach.id, DAY, 30, "UTC", calendar=calendar)
    assert result.slots == []
    assert result.calendar_status == CalendarStatus.CONNECTED


async def test_external_event_merged_with_bookings(session, factory):
    coach, client = await factory.coach(), await factory.user()
    await factory.booking(coach, DAY, time(9, 0), client=client)
    calendar = FakeProvider(
        events=[ExternalCalendarEvent(id="dentist", start=utc(2024, 3, 10, 14, 0), end=utc(2024, 3, 10, 15, 0))]
    )
    result = await get_availability(session, coach.id, DAY, 60, "UTC", calendar=calendar)
    assert not {time(9, 0), time(14, 0)} & starts(result)
    assert {time(10, 0), time(15, 0)} <= starts(result)
    assert [i.ref for i in result.busy] == [1, "dentist"]


async def test_repeated_queries_are_stable(session, factory):
    coach, client = await factory.coach(), await factory.user()
    await factory.booking(coach, DAY, time(9, 0), client=client)
    first = await get_availability(session, coach.id, DAY, 45, "Europe/Berlin")
    second = await get_availability(session, coach.id, DAY, 45, "Europe/Berlin")
    assert first.slots == second.slots


async def test_stale_selection_is_cleared(session, factory):
    coach, client = await factory.coach(), await factory.user()
    kept = await get_availability(session, coach.id, DAY, 60, "UTC", selected=time(9, 0))
    assert kept.selected == time(9, 0)
    assert not kept.selection_cleared

    await factory.booking(coach, DAY, time(9, 0), client=client)
    stale = await get_availability(session, coach.id, DAY, 60, "UTC", selected=time(9, 0))
    assert stale.selected is None
    assert stale.selection_cleared


def test_reconcile_selection():
    slots = [CandidateSlot(time(8, 0), 30)]
    assert reconcile_selection(time(8, 0), slots) == time(8, 0)
    assert reconcile_selection(time(8, 30), slots) is None
    assert reconcile_selection(None, slots) is None


async def test_slow_calendar_degrades_to_internal_only(session, factory):
    coach, client = await factory.coach(), await factory.user()
    await factory.booking(coach, DAY, time(9, 0), client=client)
    calendar = FakeProvider(
        events=[ExternalCalendarEvent(id="pto", all_day=True)],
        delay=1.0,
    )
    result = await get_availability(session, coach.id, DAY, 60, "UTC", calendar=calendar, timeout=0.05)
    assert result.calendar_status == CalendarStatus.UNAVAILABLE
    assert result.low_confidence
    assert time(9, 0) not in starts(result)
    assert time(10, 0) in starts(result)


@pytest.mark.parametrize(
    "error",
    [ProviderUnavailable("google returned status=500"), httpx.ConnectError("connection refused")],
)
async def test_calendar_errors_degrade(session, factory, error):
    coach = await factory.coach()
    result = await get_availability(
        session, coach.id, DAY, 60, "UTC", calendar=FakeProvider(error=error)
    )
    assert result.calendar_status == CalendarStatus.UNAVAILABLE
    assert len(result.slots) == 46


async def test_disconnected_calendar_is_not_queried(session, factory):
    coach = await factory.coach()
    calendar = FakeProvider(is_connected=False)
    result = await get_availability(session, coach.id, DAY, 60, "UTC", calendar=calendar)
    assert result.calendar_status == CalendarStatus.NOT_CONNECTED
    assert not result.low_confidence
    assert calendar.busy_calls == 0


@pytest.mark.parametrize(
    "duration,zone",
    [(0, "UTC"), (481, "UTC"), (60, "Not/AZone")],
)
async def test_invalid_input_rejected(session, duration, zone):
    with pytest.raises(InputError):
        await get_availability(session, 1, DAY, duration, zone)
