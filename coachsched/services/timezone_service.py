"""
Timezone conversion between stored UTC (date, time) pairs and a viewer's
local wall clock.

Stored bookings carry a UTC date and a UTC time of day. Grouping by day must
always use the *converted* local date: a UTC evening slot can land on the next
local day (or the previous one, west of Greenwich).
"""

import logging
from datetime import date, datetime, time, tzinfo
from typing import NamedTuple

import pytz

logger = logging.getLogger(__name__)


class LocalizedTime(NamedTuple):
    date: date
    time: time
    # DST flag of the converted wall time; resolves ambiguous fall-back hours on the way back
    is_dst: bool | None = None
    # False when the zone was unknown and the values were passed through unchanged
    confident: bool = True


def resolve_zone(zone: str | None) -> tzinfo | None:
    if not zone:
        return None
    try:
        return pytz.timezone(zone)
    except pytz.UnknownTimeZoneError:
        return None


def is_valid_zone(zone: str | None) -> bool:
    return resolve_zone(zone) is not None


def to_local(utc_date: date, utc_time: time, zone: str) -> LocalizedTime:
    """Convert a UTC (date, time) pair to the wall clock of `zone`.

    An unknown zone degrades to treating the instant as already local and
    marks the result as not confident.
    """
    tz = resolve_zone(zone)
    if tz is None:
        logger.warning("Unknown timezone %r, treating %s %s as local", zone, utc_date, utc_time)
        return LocalizedTime(utc_date, utc_time.replace(second=0, microsecond=0), None, False)
    instant = pytz.utc.localize(datetime.combine(utc_date, utc_time))
    local = instant.astimezone(tz)
    return LocalizedTime(
        local.date(),
        local.time().replace(second=0, microsecond=0),
        bool(local.dst()),
        True,
    )


def to_utc(
    local_date: date,
    local_time: time,
    zone: str,
    is_dst: bool | None = None,
) -> LocalizedTime:
    """Inverse of :func:`to_local`.

    `is_dst` picks the side of an ambiguous wall time; when omitted the
    standard-time reading is used (pytz default). Wall times that fall in a
    spring-forward gap are shifted forward by the gap.
    """
    tz = resolve_zone(zone)
    if tz is None:
        logger.warning("Unknown timezone %r, treating %s %s as UTC", zone, local_date, local_time)
        return LocalizedTime(local_date, local_time.replace(second=0, microsecond=0), None, False)
    local = tz.localize(datetime.combine(local_date, local_time), is_dst=bool(is_dst))
    instant = local.astimezone(pytz.utc)
    return LocalizedTime(
        instant.date(),
        instant.time().replace(second=0, microsecond=0),
        None,
        True,
    )


def instant_to_local(instant: datetime, zone: str) -> LocalizedTime:
    """Convert an absolute instant (naive values are read as UTC) to `zone`."""
    if instant.tzinfo is not None:
        instant = instant.astimezone(pytz.utc).replace(tzinfo=None)
    return to_local(instant.date(), instant.time(), zone)
