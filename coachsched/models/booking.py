from datetime import UTC, date, datetime, time
from enum import Enum

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class BookingStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses whose time no longer blocks the coach's calendar
FREEING_STATUSES = (BookingStatus.CANCELLED.value, BookingStatus.NO_SHOW.value)


class MeetingPlatform(str, Enum):
    NONE = "none"
    GOOGLE_MEET = "google_meet"
    ZOOM = "zoom"
    TEAMS = "teams"


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint(
            "(client_id IS NULL) <> (group_id IS NULL)", name="ck_bookings_single_subject"
        ),
        CheckConstraint(
            "duration_minutes BETWEEN 1 AND 480", name="ck_bookings_duration_range"
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    coach_id: int = Field(foreign_key="users.id", index=True)
    client_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    group_id: int | None = Field(default=None, foreign_key="groups.id", index=True)
    title: str = "Session"
    description: str | None = None
    # UTC date + UTC wall-clock time; together an absolute instant
    session_date: date = Field(index=True)
    session_time: time
    duration_minutes: int = 60
    status: str = Field(default=BookingStatus.SCHEDULED.value, max_length=20, index=True)
    meeting_platform: str = Field(default=MeetingPlatform.NONE.value, max_length=20)
    meeting_link: str | None = None
    external_meeting_id: str | None = None
    origin_timezone: str = "UTC"
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)

    @property
    def starts_at_utc(self) -> datetime:
        return datetime.combine(self.session_date, self.session_time, tzinfo=UTC)


class BookingPublic(SQLModel):
    id: int
    coach_id: int
    client_id: int | None = None
    group_id: int | None = None
    title: str
    description: str | None = None
    session_date: date
    session_time: time
    duration_minutes: int
    status: str
    meeting_platform: str
    meeting_link: str | None = None
    external_meeting_id: str | None = None
    origin_timezone: str
    created_at: datetime
