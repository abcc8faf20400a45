"""Microsoft Teams online meetings provider (Microsoft Graph)."""

from coachsched.core.errors import ProviderUnavailable
from coachsched.providers.base import MeetingDetails, MeetingResult, SchedulingProvider

GRAPH_API = "https://graph.microsoft.com/v1.0"


class TeamsProvider(SchedulingProvider):
    name = "microsoft"

    async def create_meeting(
        self, details: MeetingDetails, attendee_emails: list[str]
    ) -> MeetingResult:
        meeting = {
            "subject": details.title,
            "startDateTime": details.starts_at.isoformat(),
            "endDateTime": details.ends_at.isoformat(),
            "participants": {
                "attendees": [
                    {"upn": e, "identity": {"user": {"displayName": e.split("@")[0]}}}
                    for e in attendee_emails
                ]
            },
        }
        data = await self._request("POST", f"{GRAPH_API}/me/onlineMeetings", json=meeting)
        if not data.get("joinWebUrl") or not data.get("id"):
            raise ProviderUnavailable("Teams meeting created without a joinWebUrl or id")
        return MeetingResult(
            join_link=data["joinWebUrl"], external_meeting_id=data["id"], provider_payload=data
        )
