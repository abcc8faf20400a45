from coachsched.models.user import User, UserRole
from coachsched.models.group import Group, GroupMember
from coachsched.models.booking import (
    Booking,
    BookingPublic,
    BookingStatus,
    FREEING_STATUSES,
    MeetingPlatform,
)
from coachsched.models.provider_connection import ProviderConnection, ProviderName
from coachsched.models.notification import Notification

__all__ = [
    "User",
    "UserRole",
    "Group",
    "GroupMember",
    "Booking",
    "BookingPublic",
    "BookingStatus",
    "FREEING_STATUSES",
    "MeetingPlatform",
    "ProviderConnection",
    "ProviderName",
    "Notification",
]
