import asyncio
import gc
from datetime import date, time

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from coachsched.core.errors import BookingNotFound, InputError, StaleAvailabilityConflict
from coachsched.models.booking import Booking, BookingStatus
from coachsched.services.booking_service import (
    BookingCommitter,
    BookingRequest,
    find_conflicts,
    get_booking,
    list_bookings_for_coach,
)

pytestmark = pytest.mark.anyio

DAY = date(2024, 3, 10)


def request_for(coach, client=None, group=None, **kwargs):
    kwargs.setdefault("session_date", DAY)
    kwargs.setdefault("session_time", time(9, 0))
    kwargs.setdefault("duration_minutes", 60)
    return BookingRequest(
        coach_id=coach.id,
        client_id=client.id if client else None,
        group_id=group.id if group else None,
        **kwargs,
    )


async def count_bookings(session_maker) -> int:
    async with session_maker() as s:
        return (await s.execute(select(func.count()).select_from(Booking))).scalar_one()


async def test_commit_inserts_scheduled_booking(session_maker, factory):
    coach, client = await factory.coach(), await factory.user()
    booking = await BookingCommitter().commit(
        session_maker, request_for(coach, client, timezone="Asia/Kolkata", title="Intro call")
    )
    assert booking.id is not None
    assert booking.status == BookingStatus.SCHEDULED.value
    assert booking.origin_timezone == "Asia/Kolkata"
    assert booking.meeting_link is None

    async with session_maker() as s:
        stored = await get_booking(s, booking.id)
    assert stored.title == "Intro call"
    assert stored.session_time == time(9, 0)


async def test_concurrent_commits_for_same_slot(session_maker, factory):
    coach, ada, bob = await factory.coach(), await factory.user("Ada"), await factory.user("Bob")
    committer = BookingCommitter()

    results = await asyncio.gather(
        committer.commit(session_maker, request_for(coach, ada)),
        committer.commit(session_maker, request_for(coach, bob)),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, StaleAvailabilityConflict)]
    assert len(winners) == 1 and len(losers) == 1
    report = losers[0].report
    assert [c.booking_id for c in report.conflicts] == [winners[0].id]
    assert report.conflicts[0].start == "09:00"
    assert report.conflicts[0].subject_label in ("Ada", "Bob")
    assert await count_bookings(session_maker) == 1


async def test_overlap_rejected_touching_accepted(session_maker, factory):
    coach, client = await factory.coach(), await factory.user("Ada")
    committer = BookingCommitter()
    await committer.commit(session_maker, request_for(coach, client))

    with pytest.raises(StaleAvailabilityConflict) as exc_info:
        await committer.commit(session_maker, request_for(coach, client, session_time=time(9, 30)))
    assert "Ada" in str(exc_info.value)
    assert exc_info.value.report.requested_start == "09:30"

    after = await committer.commit(session_maker, request_for(coach, client, session_time=time(10, 0)))
    before = await committer.commit(
        session_maker, request_for(coach, client, session_time=time(8, 0))
    )
    assert after.id != before.id
    assert await count_bookings(session_maker) == 3


async def test_conflict_reported_in_requester_zone(session_maker, factory):
    coach, client = await factory.coach(), await factory.user()
    committer = BookingCommitter()
    await committer.commit(session_maker, request_for(coach, client, session_time=time(3, 30)))

    with pytest.raises(StaleAvailabilityConflict) as exc_info:
        await committer.commit(
            session_maker,
            request_for(coach, client, session_time=time(4, 0), timezone="Asia/Kolkata"),
        )
    report = exc_info.value.report
    assert (report.requested_start, report.requested_end) == ("09:30", "10:30")
    assert (report.conflicts[0].start, report.conflicts[0].end) == ("09:00", "10:00")


async def test_session_crossing_midnight_blocks_next_morning(session_maker, factory):
    coach, client = await factory.coach(), await factory.user()
    committer = BookingCommitter()
    await committer.commit(
        session_maker, request_for(coach, client, session_time=time(23, 30), duration_minutes=90)
    )
    with pytest.raises(StaleAvailabilityConflict):
        await committer.commit(
            session_maker,
            request_for(coach, client, session_date=date(2024, 3, 11), session_time=time(0, 30)),
        )
    # and the reverse: a late request running into an existing next-day session
    await committer.commit(
        session_maker, request_for(coach, client, session_date=date(2024, 3, 12), session_time=time(1, 0))
    )
    with pytest.raises(StaleAvailabilityConflict):
        await committer.commit(
            session_maker,
            request_for(coach, client, session_date=date(2024, 3, 11), session_time=time(23, 30), duration_minutes=120),
        )


async def test_cancelled_booking_frees_slot(session_maker, factory):
    coach, client = await factory.coach(), await factory.user()
    await factory.booking(coach, DAY, time(9, 0), client=client, status=BookingStatus.CANCELLED)
    booking = await BookingCommitter().commit(session_maker, request_for(coach, client))
    assert booking.id is not None


async def test_group_booking(session_maker, factory):
    coach = await factory.coach()
    members = [await factory.user() for _ in range(3)]
    group = await factory.group(coach, members)
    booking = await BookingCommitter().commit(session_maker, request_for(coach, group=group))
    assert booking.group_id == group.id
    assert booking.client_id is None

    async with session_maker() as s:
        report = await find_conflicts(s, request_for(coach, members[0]))
    assert report.conflicts[0].subject_label == "Morning Group"


async def test_group_must_belong_to_coach(session_maker, factory):
    coach, other = await factory.coach(), await factory.coach("Other")
    group = await factory.group(other, [await factory.user()])
    with pytest.raises(InputError):
        await BookingCommitter().commit(session_maker, request_for(coach, group=group))


async def test_unknown_coach_or_client(session_maker, factory):
    coach, client = await factory.coach(), await factory.user()
    committer = BookingCommitter()
    with pytest.raises(InputError):
        await committer.commit(
            session_maker, BookingRequest(coach_id=999, client_id=client.id, session_date=DAY, session_time=time(9, 0))
        )
    with pytest.raises(InputError):
        await committer.commit(
            session_maker, BookingRequest(coach_id=coach.id, client_id=999, session_date=DAY, session_time=time(9, 0))
        )
    assert await count_bookings(session_maker) == 0


@pytest.mark.parametrize(
    "fields",
    [
        {"client_id": 2, "group_id": 3},
        {},
        {"client_id": 2, "duration_minutes": 0},
        {"client_id": 2, "duration_minutes": 481},
        {"client_id": 2, "timezone": "Nowhere/Special"},
    ],
)
def test_request_validation(fields):
    with pytest.raises(ValidationError):
        BookingRequest(coach_id=1, session_date=DAY, session_time=time(9, 0), **fields)


def test_request_drops_seconds():
    request = BookingRequest(coach_id=1, client_id=2, session_date=DAY, session_time=time(9, 0, 59))
    assert request.session_time == time(9, 0)


def test_request_with_offset_converted_to_utc():
    request = BookingRequest(coach_id=1, client_id=2, session_date=DAY, session_time="10:00+05:30")
    assert request.session_date == DAY
    assert request.session_time == time(4, 30)
    assert request.session_time.tzinfo is None


def test_request_offset_can_move_to_previous_utc_day():
    request = BookingRequest(coach_id=1, client_id=2, session_date=DAY, session_time="00:30+05:30")
    assert request.session_date == date(2024, 3, 9)
    assert request.session_time == time(19, 0)


async def test_commit_locks_released_after_use(session_maker, factory):
    coach, ada, bob = await factory.coach(), await factory.user("Ada"), await factory.user("Bob")
    committer = BookingCommitter()
    await asyncio.gather(
        committer.commit(session_maker, request_for(coach, ada, session_time=time(9, 0))),
        committer.commit(session_maker, request_for(coach, bob, session_time=time(11, 0))),
    )
    gc.collect()
    assert len(committer._locks) == 0


async def test_get_and_list_bookings(session, factory):
    coach, client = await factory.coach(), await factory.user()
    other = await factory.coach("Other")
    first = await factory.booking(coach, date(2024, 3, 11), time(9, 0), client=client)
    second = await factory.booking(coach, date(2024, 3, 10), time(15, 0), client=client)
    await factory.booking(coach, date(2024, 3, 20), time(9, 0), client=client)
    await factory.booking(other, date(2024, 3, 10), time(9, 0), client=client)

    listed = await list_bookings_for_coach(session, coach.id, date(2024, 3, 10), date(2024, 3, 11))
    assert [b.id for b in listed] == [second.id, first.id]
    assert len(await list_bookings_for_coach(session, coach.id)) == 3

    with pytest.raises(BookingNotFound):
        await get_booking(session, 12345)
