"""
Google Calendar / Google Meet provider.

Serves as the coach's external busy-calendar feed and creates Meet links
through calendar events with conference data.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any
from uuid import uuid4

import pytz

from coachsched.core.errors import ProviderUnavailable
from coachsched.providers.base import MeetingDetails, MeetingResult, SchedulingProvider
from coachsched.services.busy_intervals import ExternalCalendarEvent
from coachsched.services.timezone_service import resolve_zone

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"


def _parse_event_time(value: dict[str, Any] | None) -> datetime | None:
    if not value or "dateTime" not in value:
        return None
    return datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))


def _day_window(target_date: date, zone: str) -> tuple[str, str]:
    """RFC3339 bounds of the local day in `zone`."""
    tz = resolve_zone(zone) or pytz.utc
    start = tz.localize(datetime.combine(target_date, time.min))
    end = tz.localize(datetime.combine(target_date + timedelta(days=1), time.min))
    return start.astimezone(pytz.utc).isoformat(), end.astimezone(pytz.utc).isoformat()


class GoogleCalendarProvider(SchedulingProvider):
    name = "google"

    @property
    def calendar_id(self) -> str:
        return (self.connection.calendar_id if self.connection else None) or "primary"

    async def list_busy_events(self, target_date: date, zone: str) -> list[ExternalCalendarEvent]:
        time_min, time_max = _day_window(target_date, zone)
        data = await self._request(
            "GET",
            f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}/events",
            params={
                "timeMin": time_min,
                "timeMax": time_max,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        events: list[ExternalCalendarEvent] = []
        for item in data.get("items", []):
            if item.get("status") == "cancelled" or item.get("transparency") == "transparent":
                continue
            start, end = item.get("start") or {}, item.get("end") or {}
            try:
                if "dateTime" in start:
                    event = ExternalCalendarEvent(
                        id=item.get("id"),
                        title=item.get("summary") or "Untitled Event",
                        start=_parse_event_time(start),
                        end=_parse_event_time(end),
                    )
                elif "date" in start:
                    # All-day events carry only dates; the end date is exclusive
                    start_date = date.fromisoformat(start["date"])
                    end_date = date.fromisoformat(end["date"]) if "date" in end else None
                    event = ExternalCalendarEvent(
                        id=item.get("id"),
                        title=item.get("summary") or "Untitled Event",
                        all_day=True,
                        start_date=start_date,
                        end_date=end_date,
                    )
                else:
                    logger.debug("Skipping Google event %s without start time", item.get("id"))
                    continue
            except (TypeError, ValueError, AttributeError):
                logger.debug("Skipping Google event %s with unparseable times", item.get("id"))
                continue
            events.append(event)
        return events

    async def create_meeting(
        self, details: MeetingDetails, attendee_emails: list[str]
    ) -> MeetingResult:
        event = {
            "summary": details.title,
            "description": details.description or "",
            "start": {"dateTime": details.starts_at.isoformat(), "timeZone": "UTC"},
            "end": {"dateTime": details.ends_at.isoformat(), "timeZone": "UTC"},
            "attendees": [{"email": e} for e in attendee_emails],
            "conferenceData": {
                "createRequest": {
                    "requestId": f"booking-{details.booking_id}-{uuid4().hex[:8]}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }
        data = await self._request(
            "POST",
            f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}/events",
            params={"conferenceDataVersion": 1, "sendUpdates": "all"},
            json=event,
        )
        entry_points = (data.get("conferenceData") or {}).get("entryPoints") or []
        join_link = next(
            (e.get("uri") for e in entry_points if e.get("entryPointType") == "video"),
            data.get("hangoutLink"),
        )
        if not join_link:
            raise ProviderUnavailable("Google event created without a Meet link")
        if not data.get("id"):
            raise ProviderUnavailable("Google event created without an id")
        return MeetingResult(join_link=join_link, external_meeting_id=data["id"], provider_payload=data)
