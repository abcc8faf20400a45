"""
Busy Interval Aggregation

Builds the set of minute ranges during which a coach is committed on one local
date, merging two independently sourced inputs:
- internal bookings, stored as a UTC (date, time) pair plus a duration
- an external calendar feed, given as absolute instants or all-day events

Inputs that cannot be converted are dropped. A coach's calendar must never be
blocked by a malformed event, so the aggregation fails open.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Protocol

from coachsched.services.timeslots import MINUTES_PER_DAY, minute_of_day
from coachsched.services.timezone_service import instant_to_local, to_local

logger = logging.getLogger(__name__)


class BusySource(str, Enum):
    INTERNAL_BOOKING = "internal-booking"
    EXTERNAL_CALENDAR = "external-calendar"
    ALL_DAY_BLOCK = "all-day-block"


@dataclass(frozen=True)
class BusyInterval:
    """Half-open [start_minute, end_minute) range measured from local midnight of
    the target date. Next-day bookings sit at 1440 and beyond."""

    start_minute: int
    end_minute: int
    source: BusySource
    ref: int | str | None = None


@dataclass(frozen=True)
class ExternalCalendarEvent:
    id: str | None = None
    title: str = "Busy"
    start: datetime | None = None
    end: datetime | None = None
    all_day: bool = False
    # All-day events: first day and exclusive last day, in the calendar's own dates
    start_date: date | None = None
    end_date: date | None = None


class BookingLike(Protocol):
    id: int | None
    session_date: date
    session_time: time
    duration_minutes: int


def _booking_intervals(
    target_date: date, zone: str, bookings: Iterable[BookingLike]
) -> list[BusyInterval]:
    previous_date = target_date - timedelta(days=1)
    next_date = target_date + timedelta(days=1)
    intervals: list[BusyInterval] = []
    for booking in bookings:
        try:
            local = to_local(booking.session_date, booking.session_time, zone)
            start = minute_of_day(local.time)
            end = start + int(booking.duration_minutes)
        except (TypeError, ValueError, AttributeError, OverflowError) as e:
            logger.debug("Dropping unconvertible booking %r: %s", getattr(booking, "id", None), e)
            continue
        if local.date == target_date:
            intervals.append(BusyInterval(start, end, BusySource.INTERNAL_BOOKING, booking.id))
        elif local.date == previous_date and end > MINUTES_PER_DAY:
            # Late session from the day before running past midnight
            intervals.append(
                BusyInterval(0, end - MINUTES_PER_DAY, BusySource.INTERNAL_BOOKING, booking.id)
            )
        elif local.date == next_date:
            # Only reachable by a candidate that itself runs past midnight
            intervals.append(
                BusyInterval(
                    start + MINUTES_PER_DAY,
                    end + MINUTES_PER_DAY,
                    BusySource.INTERNAL_BOOKING,
                    booking.id,
                )
            )
    return intervals


def _event_interval(
    target_date: date, zone: str, event: ExternalCalendarEvent
) -> BusyInterval | None:
    if event.all_day:
        if event.start_date is not None:
            end_date = event.end_date or event.start_date + timedelta(days=1)
            if not event.start_date <= target_date < end_date:
                return None
        return BusyInterval(0, MINUTES_PER_DAY, BusySource.ALL_DAY_BLOCK, event.id)
    if event.start is None or event.end is None:
        raise ValueError("timed event without start/end")
    local_start = instant_to_local(event.start, zone)
    if local_start.date != target_date:
        return None
    local_end = instant_to_local(event.end, zone)
    start = minute_of_day(local_start.time)
    end = MINUTES_PER_DAY if local_end.date > target_date else minute_of_day(local_end.time)
    if end <= start:
        return None
    return BusyInterval(start, end, BusySource.EXTERNAL_CALENDAR, event.id)


def aggregate_busy_intervals(
    target_date: date,
    zone: str,
    bookings: Iterable[BookingLike],
    external_events: Iterable[ExternalCalendarEvent] = (),
) -> list[BusyInterval]:
    """Busy intervals for `target_date` as seen from `zone`, ordered by start.

    Overlapping intervals are kept as-is; conflict detection treats the list
    as a disjunction.
    """
    intervals = _booking_intervals(target_date, zone, bookings)
    for event in external_events:
        try:
            interval = _event_interval(target_date, zone, event)
        except (TypeError, ValueError, AttributeError, OverflowError) as e:
            logger.debug("Dropping unconvertible calendar event %r: %s", getattr(event, "id", None), e)
            continue
        if interval is not None:
            intervals.append(interval)
    intervals.sort(key=lambda i: (i.start_minute, i.end_minute))
    return intervals
