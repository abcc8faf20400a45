from datetime import date

from pydantic import BaseModel

from coachsched.services.availability_service import AvailabilityResult
from coachsched.services.timeslots import format_minutes


class SlotInfo(BaseModel):
    start: str  # HH:MM, local to the requested timezone
    end: str
    duration_minutes: int


class BusyIntervalInfo(BaseModel):
    start_minute: int
    end_minute: int
    source: str
    ref: int | str | None = None


class AvailabilityResponse(BaseModel):
    date: date
    timezone: str
    duration_minutes: int
    slots: list[SlotInfo]
    busy: list[BusyIntervalInfo]
    calendar_status: str
    low_confidence: bool
    selected: str | None = None
    selection_cleared: bool = False

    @classmethod
    def from_result(cls, result: AvailabilityResult) -> "AvailabilityResponse":
        return cls(
            date=result.date,
            timezone=result.timezone,
            duration_minutes=result.duration_minutes,
            slots=[
                SlotInfo(
                    start=s.label,
                    end=format_minutes(s.end_minute),
                    duration_minutes=s.duration_minutes,
                )
                for s in result.slots
            ],
            busy=[
                BusyIntervalInfo(
                    start_minute=i.start_minute,
                    end_minute=i.end_minute,
                    source=i.source.value,
                    ref=i.ref,
                )
                for i in result.busy
            ],
            calendar_status=result.calendar_status.value,
            low_confidence=result.low_confidence,
            selected=result.selected.strftime("%H:%M") if result.selected else None,
            selection_cleared=result.selection_cleared,
        )
