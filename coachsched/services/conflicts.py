"""
Conflict Detection

One half-open overlap predicate shared by the availability filter and the
commit re-validation, so what the UI offers and what the server accepts can
never drift apart.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from coachsched.services.busy_intervals import BusyInterval


def _intersects(start: int, end: int, interval: BusyInterval) -> bool:
    # Touching endpoints are not a conflict
    return start < interval.end_minute and end > interval.start_minute


def conflicting_intervals(
    start_minute: int, duration: int, busy_intervals: Iterable[BusyInterval]
) -> list[BusyInterval]:
    end_minute = start_minute + duration
    return [i for i in busy_intervals if _intersects(start_minute, end_minute, i)]


def overlaps(start_minute: int, duration: int, busy_intervals: Iterable[BusyInterval]) -> bool:
    end_minute = start_minute + duration
    return any(_intersects(start_minute, end_minute, i) for i in busy_intervals)


@dataclass(frozen=True)
class ConflictingSession:
    booking_id: int
    title: str
    subject_label: str
    start: str  # HH:MM, local to the requester's timezone
    end: str
    duration_minutes: int


@dataclass(frozen=True)
class ConflictReport:
    requested_start: str
    requested_end: str
    timezone: str
    conflicts: list[ConflictingSession] = field(default_factory=list)

    @property
    def message(self) -> str:
        names = ", ".join(
            f"{c.title} with {c.subject_label} ({c.start}–{c.end})" for c in self.conflicts
        )
        return f"Time slot {self.requested_start}–{self.requested_end} conflicts with existing session(s): {names}"
