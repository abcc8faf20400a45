"""Zoom meetings provider."""

from coachsched.core.errors import ProviderUnavailable
from coachsched.providers.base import MeetingDetails, MeetingResult, SchedulingProvider

ZOOM_API = "https://api.zoom.us/v2"


class ZoomProvider(SchedulingProvider):
    name = "zoom"

    async def create_meeting(
        self, details: MeetingDetails, attendee_emails: list[str]
    ) -> MeetingResult:
        meeting = {
            "topic": details.title,
            "type": 2,  # scheduled meeting
            "start_time": details.starts_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration": details.duration_minutes,
            "timezone": details.timezone,
            "agenda": details.description or "",
            "settings": {
                "host_video": True,
                "participant_video": True,
                "join_before_host": False,
                "waiting_room": True,
                "meeting_invitees": [{"email": e} for e in attendee_emails],
            },
        }
        data = await self._request("POST", f"{ZOOM_API}/users/me/meetings", json=meeting)
        if not data.get("join_url") or not data.get("id"):
            raise ProviderUnavailable("Zoom meeting created without a join_url or id")
        return MeetingResult(
            join_link=data["join_url"], external_meeting_id=str(data["id"]), provider_payload=data
        )
