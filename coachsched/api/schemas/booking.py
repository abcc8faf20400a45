from pydantic import BaseModel, Field

from coachsched.models.booking import MeetingPlatform
from coachsched.services.conflicts import ConflictReport
from coachsched.services.meeting_service import OrchestrationResult


class ConflictingSessionInfo(BaseModel):
    booking_id: int
    title: str
    subject_label: str
    start: str
    end: str
    duration_minutes: int


class ConflictReportResponse(BaseModel):
    detail: str
    requested_start: str
    requested_end: str
    timezone: str
    conflicts: list[ConflictingSessionInfo]

    @classmethod
    def from_report(cls, report: ConflictReport) -> "ConflictReportResponse":
        return cls(
            detail=report.message,
            requested_start=report.requested_start,
            requested_end=report.requested_end,
            timezone=report.timezone,
            conflicts=[ConflictingSessionInfo(**vars(c)) for c in report.conflicts],
        )


class AttachMeetingRequest(BaseModel):
    # Defaults to the platform chosen when the booking was made
    platform: MeetingPlatform | None = None


class MeetingLinkRequest(BaseModel):
    platform: MeetingPlatform
    join_link: str = Field(min_length=1)
    external_meeting_id: str | None = None


class OrchestrationResponse(BaseModel):
    booking_id: int
    platform: str
    status: str
    ok: bool
    join_link: str | None = None
    external_meeting_id: str | None = None
    error: str | None = None

    @classmethod
    def from_result(cls, result: OrchestrationResult) -> "OrchestrationResponse":
        return cls(
            booking_id=result.booking_id,
            platform=result.platform,
            status=result.status.value,
            ok=result.ok,
            join_link=result.join_link,
            external_meeting_id=result.external_meeting_id,
            error=result.error,
        )
