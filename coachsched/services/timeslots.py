from dataclasses import dataclass
from datetime import time

SLOT_GRANULARITY_MINUTES = 30
FIRST_SLOT_MINUTE = 60  # 01:00
LAST_SLOT_MINUTE = 23 * 60 + 30  # 23:30, sessions never start later
MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class CandidateSlot:
    """A start time in the viewer's local day paired with the requested duration."""

    start: time
    duration_minutes: int

    @property
    def start_minute(self) -> int:
        return minute_of_day(self.start)

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    @property
    def label(self) -> str:
        return self.start.strftime("%H:%M")


def minute_of_day(t: time) -> int:
    return t.hour * 60 + t.minute


def time_from_minute(minute: int) -> time:
    return time(minute // 60, minute % 60)


def format_minutes(minute: int) -> str:
    """HH:MM for a minute offset; values past midnight keep counting hours (e.g. 24:30)."""
    return f"{minute // 60:02d}:{minute % 60:02d}"


def generate_time_slots() -> list[time]:
    """Allowed daily start times, 01:00 through 23:30 every 30 minutes."""
    return [
        time_from_minute(m)
        for m in range(FIRST_SLOT_MINUTE, LAST_SLOT_MINUTE + 1, SLOT_GRANULARITY_MINUTES)
    ]
