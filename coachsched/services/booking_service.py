"""
Booking Service

Authoritative commit of a booking. Client-side availability is advisory only:
the conflict check is re-run here against the live booking table, inside the
same transaction as the insert, so two concurrent commits for overlapping
slots can never both succeed.
"""

import asyncio
import logging
import weakref
from datetime import UTC, date, datetime, time

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coachsched.core.errors import BookingNotFound, InputError, StaleAvailabilityConflict
from coachsched.models.booking import Booking, BookingStatus, MeetingPlatform
from coachsched.models.group import Group
from coachsched.models.user import User
from coachsched.services.availability_service import (
    get_active_bookings_near,
    validate_duration,
    validate_zone,
)
from coachsched.services.busy_intervals import aggregate_busy_intervals
from coachsched.services.conflicts import ConflictingSession, ConflictReport, conflicting_intervals
from coachsched.services.timeslots import format_minutes, minute_of_day
from coachsched.services.timezone_service import to_local

logger = logging.getLogger(__name__)


class BookingRequest(BaseModel):
    coach_id: int
    client_id: int | None = None
    group_id: int | None = None
    title: str = Field(default="Session", min_length=1, max_length=200)
    description: str | None = None
    # UTC date + UTC time
    session_date: date
    session_time: time
    duration_minutes: int = 60
    timezone: str = "UTC"  # timezone the booking was made from, kept for audit
    meeting_platform: MeetingPlatform = MeetingPlatform.NONE

    @field_validator("duration_minutes")
    @classmethod
    def _duration_in_range(cls, v: int) -> int:
        validate_duration(v)
        return v

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, v: str) -> str:
        validate_zone(v)
        return v

    @field_validator("session_time")
    @classmethod
    def _whole_minutes(cls, v: time) -> time:
        return v.replace(second=0, microsecond=0)

    @model_validator(mode="after")
    def _single_subject(self) -> "BookingRequest":
        if (self.client_id is None) == (self.group_id is None):
            raise InputError("Exactly one of client_id or group_id is required")
        return self

    @model_validator(mode="after")
    def _normalize_to_utc(self) -> "BookingRequest":
        if self.session_time.tzinfo is not None:
            # An explicit offset may move the instant onto another UTC date
            instant = datetime.combine(self.session_date, self.session_time).astimezone(UTC)
            self.session_date = instant.date()
            self.session_time = instant.time().replace(tzinfo=None)
        return self


async def _subject_labels(session: AsyncSession, bookings: list[Booking]) -> dict[int, str]:
    """Human-readable subject per booking id: client name or group name."""
    client_ids = {b.client_id for b in bookings if b.client_id is not None}
    group_ids = {b.group_id for b in bookings if b.group_id is not None}
    names: dict[tuple[str, int], str] = {}
    if client_ids:
        result = await session.execute(select(User).where(User.id.in_(client_ids)))
        for u in result.scalars():
            names[("client", u.id)] = u.full_name or u.email
    if group_ids:
        result = await session.execute(select(Group).where(Group.id.in_(group_ids)))
        for g in result.scalars():
            names[("group", g.id)] = g.name
    labels: dict[int, str] = {}
    for b in bookings:
        if b.client_id is not None:
            labels[b.id] = names.get(("client", b.client_id), f"client #{b.client_id}")
        else:
            labels[b.id] = names.get(("group", b.group_id), f"group #{b.group_id}")
    return labels


async def _validate_parties(session: AsyncSession, request: BookingRequest) -> None:
    if request.client_id is not None:
        client = await session.get(User, request.client_id)
        if client is None:
            raise InputError(f"Unknown client {request.client_id}")
    else:
        group = await session.get(Group, request.group_id)
        if group is None or group.coach_id != request.coach_id:
            raise InputError(f"Unknown group {request.group_id} for coach {request.coach_id}")


async def find_conflicts(
    session: AsyncSession, request: BookingRequest
) -> ConflictReport | None:
    """Re-run busy aggregation + conflict detection for the request's local day."""
    local = to_local(request.session_date, request.session_time, request.timezone)
    start = minute_of_day(local.time)
    bookings = await get_active_bookings_near(session, request.coach_id, local.date)
    busy = aggregate_busy_intervals(local.date, request.timezone, bookings)
    hits = conflicting_intervals(start, request.duration_minutes, busy)
    if not hits:
        return None
    by_id = {b.id: b for b in bookings}
    clashing = [by_id[i.ref] for i in hits if i.ref in by_id]
    labels = await _subject_labels(session, clashing)
    return ConflictReport(
        requested_start=format_minutes(start),
        requested_end=format_minutes(start + request.duration_minutes),
        timezone=request.timezone,
        conflicts=[
            ConflictingSession(
                booking_id=i.ref,
                title=by_id[i.ref].title,
                subject_label=labels[i.ref],
                start=format_minutes(i.start_minute),
                end=format_minutes(i.end_minute),
                duration_minutes=by_id[i.ref].duration_minutes,
            )
            for i in hits
            if i.ref in by_id
        ],
    )


class BookingCommitter:
    """
    Serializes commits per coach.

    An in-process lock keyed by coach orders commits within one worker; the
    row lock on the coach (SELECT ... FOR UPDATE) orders them across workers.
    Conflict re-check and insert share one transaction.
    """

    def __init__(self) -> None:
        # Entries disappear once no commit for that coach holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, coach_id: int) -> asyncio.Lock:
        lock = self._locks.get(coach_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[coach_id] = lock
        return lock

    async def commit(
        self, session_maker: async_sessionmaker[AsyncSession], request: BookingRequest
    ) -> Booking:
        # Once started a commit runs to completion even if the caller goes away
        return await asyncio.shield(self._commit(session_maker, request))

    async def _commit(
        self, session_maker: async_sessionmaker[AsyncSession], request: BookingRequest
    ) -> Booking:
        lock = self._lock_for(request.coach_id)
        async with lock:
            async with session_maker() as session:
                async with session.begin():
                    coach = (
                        await session.execute(
                            select(User).where(User.id == request.coach_id).with_for_update()
                        )
                    ).scalar_one_or_none()
                    if coach is None:
                        raise InputError(f"Unknown coach {request.coach_id}")
                    await _validate_parties(session, request)

                    report = await find_conflicts(session, request)
                    if report is not None:
                        logger.info(
                            "Booking rejected for coach %s at %s %s UTC: %d conflict(s)",
                            request.coach_id,
                            request.session_date,
                            request.session_time,
                            len(report.conflicts),
                        )
                        raise StaleAvailabilityConflict(report)

                    booking = Booking(
                        coach_id=request.coach_id,
                        client_id=request.client_id,
                        group_id=request.group_id,
                        title=request.title,
                        description=request.description,
                        session_date=request.session_date,
                        session_time=request.session_time,
                        duration_minutes=request.duration_minutes,
                        status=BookingStatus.SCHEDULED.value,
                        meeting_platform=request.meeting_platform.value,
                        origin_timezone=request.timezone,
                    )
                    session.add(booking)
                    await session.flush()
                    await session.refresh(booking)
            logger.info(
                "Booking %s committed for coach %s at %s %s UTC (%d min)",
                booking.id,
                booking.coach_id,
                booking.session_date,
                booking.session_time,
                booking.duration_minutes,
            )
            return booking


async def get_booking(session: AsyncSession, booking_id: int) -> Booking:
    booking = await session.get(Booking, booking_id)
    if booking is None:
        raise BookingNotFound(f"Booking {booking_id} not found")
    return booking


async def list_bookings_for_coach(
    session: AsyncSession,
    coach_id: int,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[Booking]:
    q = select(Booking).where(Booking.coach_id == coach_id).order_by(
        Booking.session_date, Booking.session_time
    )
    if from_date:
        q = q.where(Booking.session_date >= from_date)
    if to_date:
        q = q.where(Booking.session_date <= to_date)
    result = await session.execute(q)
    return list(result.scalars().all())
