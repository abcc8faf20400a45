from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from coachsched.services.conflicts import ConflictReport


class SchedulingError(Exception):
    """Base class for errors scoped to a single scheduling request."""


class InputError(SchedulingError, ValueError):
    """Malformed date, zone, duration or subject. Raised before any I/O."""


class BookingNotFound(SchedulingError, LookupError):
    pass


class StaleAvailabilityConflict(SchedulingError):
    """The requested slot was taken between the availability query and the commit."""

    def __init__(self, report: ConflictReport) -> None:
        self.report = report
        super().__init__(report.message)


class ProviderUnavailable(SchedulingError):
    """Calendar or meeting provider unreachable, timed out or rejected the call."""


class ProviderNotConnected(ProviderUnavailable):
    """The coach has no active connection for the provider."""
