from coachsched.services.busy_intervals import BusyInterval, BusySource
from coachsched.services.conflicts import (
    ConflictingSession,
    ConflictReport,
    conflicting_intervals,
    overlaps,
)

NINE_TO_TEN = BusyInterval(540, 600, BusySource.INTERNAL_BOOKING, 1)


def test_touching_endpoints_do_not_conflict():
    assert not overlaps(600, 30, [NINE_TO_TEN])  # starts at 10:00
    assert not overlaps(480, 60, [NINE_TO_TEN])  # ends at 09:00


def test_partial_and_containing_overlaps():
    assert overlaps(510, 60, [NINE_TO_TEN])
    assert overlaps(570, 15, [NINE_TO_TEN])
    assert overlaps(480, 180, [NINE_TO_TEN])


def test_conflicting_intervals_returns_every_hit():
    other = BusyInterval(0, 1440, BusySource.ALL_DAY_BLOCK, "holiday")
    assert conflicting_intervals(570, 30, [NINE_TO_TEN, other]) == [NINE_TO_TEN, other]
    assert conflicting_intervals(700, 30, [NINE_TO_TEN]) == []


def test_shrinking_a_free_request_never_creates_a_conflict():
    busy = [NINE_TO_TEN, BusyInterval(720, 780, BusySource.EXTERNAL_CALENDAR, "lunch")]
    for start in range(0, 1440, 15):
        for duration in range(1, 481, 7):
            if not overlaps(start, duration, busy):
                assert not overlaps(start, duration - 1 or 1, busy)


def test_report_message_names_each_session():
    report = ConflictReport(
        requested_start="09:30",
        requested_end="10:30",
        timezone="UTC",
        conflicts=[ConflictingSession(1, "Session", "Ada Lovelace", "09:00", "10:00", 60)],
    )
    assert "09:30" in report.message
    assert "Ada Lovelace" in report.message
