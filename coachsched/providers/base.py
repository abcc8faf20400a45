"""
Base Provider

Defines the collaborator contract every calendar / video-meeting provider
implements. Scheduling code talks to this interface only, never to a specific
platform.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

import httpx

from coachsched.core.config import settings
from coachsched.core.errors import ProviderNotConnected, ProviderUnavailable
from coachsched.models.provider_connection import ProviderConnection
from coachsched.services.busy_intervals import ExternalCalendarEvent


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    NOT_CONNECTED = "not_connected"
    EXPIRED = "expired"


@dataclass(frozen=True)
class MeetingDetails:
    booking_id: int
    title: str
    starts_at: datetime  # timezone-aware UTC
    duration_minutes: int
    timezone: str = "UTC"
    description: str | None = None

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True)
class MeetingResult:
    join_link: str
    external_meeting_id: str
    provider_payload: dict[str, Any] = field(default_factory=dict)


class SchedulingProvider(ABC):
    """
    Calendar / meeting provider backed by a stored OAuth connection.

    Subclasses implement `create_meeting`; calendar feeds also override
    `list_busy_events`. Errors surface as ProviderUnavailable.
    """

    name: str = ""

    def __init__(
        self,
        connection: ProviderConnection | None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.connection = connection
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self.transport = transport

    def connection_status(self) -> ConnectionStatus:
        if self.connection is None or not self.connection.is_active:
            return ConnectionStatus.NOT_CONNECTED
        if self.connection.is_expired():
            return ConnectionStatus.EXPIRED
        return ConnectionStatus.CONNECTED

    @property
    def is_connected(self) -> bool:
        return self.connection_status() == ConnectionStatus.CONNECTED

    async def list_busy_events(self, target_date: date, zone: str) -> list[ExternalCalendarEvent]:
        """Busy events for the coach on `target_date`. Providers without a calendar have none."""
        return []

    @abstractmethod
    async def create_meeting(
        self, details: MeetingDetails, attendee_emails: list[str]
    ) -> MeetingResult:
        """
        Create a meeting resource at the provider.

        Raises:
            ProviderNotConnected: no usable connection
            ProviderUnavailable: transport error, timeout or rejected request
        """

    def _require_token(self) -> str:
        status = self.connection_status()
        if status != ConnectionStatus.CONNECTED or self.connection is None:
            raise ProviderNotConnected(f"{self.name} connection is {status.value}")
        return self.connection.access_token

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        token = self._require_token()
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"{self.name} request failed: {type(e).__name__}: {e}") from e
        if resp.status_code not in (200, 201):
            raise ProviderUnavailable(
                f"{self.name} returned status={resp.status_code} body={resp.text[:500]}"
            )
        try:
            data = resp.json()
        except ValueError:
            raise ProviderUnavailable(
                f"{self.name} returned a non-JSON body: {resp.text[:200]!r}"
            ) from None
        if not isinstance(data, dict):
            raise ProviderUnavailable(f"{self.name} returned {type(data).__name__}, expected an object")
        return data
