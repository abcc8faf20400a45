"""
Notification Fanout

Sends one notification per interested party of a committed booking. Each
send is independent: a failure is recorded for that recipient and the rest
carry on. The booking is the durable fact; notifications are advisory.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coachsched.core.config import settings
from coachsched.models.booking import Booking
from coachsched.models.group import Group, GroupMember
from coachsched.models.notification import Notification
from coachsched.models.user import User
from coachsched.services.booking_service import get_booking
from coachsched.services.email_service import send_session_email
from coachsched.services.timezone_service import to_local

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, user_id: int, payload: dict[str, Any]) -> bool: ...


class FanoutStatus(str, Enum):
    DELIVERED = "delivered"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


@dataclass
class FanoutResult:
    booking_id: int
    delivered: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def status(self) -> FanoutStatus:
        if not self.failed:
            return FanoutStatus.DELIVERED
        if self.delivered:
            return FanoutStatus.PARTIAL_FAILURE
        return FanoutStatus.FAILED


async def booking_recipients(session: AsyncSession, booking: Booking) -> list[int]:
    """Coach first, then the client or every group member, without duplicates."""
    recipients = [booking.coach_id]
    if booking.client_id is not None:
        recipients.append(booking.client_id)
    else:
        result = await session.execute(
            select(GroupMember.user_id)
            .where(GroupMember.group_id == booking.group_id)
            .order_by(GroupMember.id)
        )
        recipients.extend(result.scalars().all())
    return list(dict.fromkeys(recipients))


async def _subject_name(session: AsyncSession, booking: Booking) -> str:
    if booking.client_id is not None:
        client = await session.get(User, booking.client_id)
        return (client.full_name or client.email) if client else "your client"
    group = await session.get(Group, booking.group_id)
    return group.name if group else "your group"


def build_payload(booking: Booking, recipient_id: int, subject_name: str) -> dict[str, Any]:
    local = to_local(booking.session_date, booking.session_time, booking.origin_timezone)
    when = f"{local.date.isoformat()} at {local.time.strftime('%H:%M')} ({booking.origin_timezone})"
    if recipient_id == booking.coach_id:
        message = f'Session "{booking.title}" with {subject_name} is scheduled for {when}.'
    else:
        message = f'Your session "{booking.title}" is scheduled for {when}.'
    return {
        "type": "session_scheduled",
        "title": "Session Scheduled",
        "message": message,
        "priority": "normal",
        "data": {
            "booking_id": booking.id,
            "session_date": booking.session_date.isoformat(),
            "session_time": booking.session_time.strftime("%H:%M"),
            "duration_minutes": booking.duration_minutes,
            "meeting_link": booking.meeting_link,
        },
    }


async def _send_one(
    notifier: Notifier, user_id: int, payload: dict[str, Any], timeout: float
) -> str | None:
    """Returns None on success, otherwise the failure reason."""
    try:
        ok = await asyncio.wait_for(notifier.send(user_id, payload), timeout)
    except TimeoutError:
        return f"timed out after {timeout:g}s"
    except Exception as e:  # one recipient must never abort the others
        return f"{type(e).__name__}: {e}"
    return None if ok else "rejected by notifier"


async def fan_out_booking_notifications(
    session_maker: async_sessionmaker[AsyncSession],
    booking_id: int,
    notifier: Notifier,
    timeout: float | None = None,
) -> FanoutResult:
    timeout = settings.notification_timeout_seconds if timeout is None else timeout
    async with session_maker() as session:
        booking = await get_booking(session, booking_id)
        recipients = await booking_recipients(session, booking)
        subject_name = await _subject_name(session, booking)

    outcomes = await asyncio.gather(
        *(
            _send_one(notifier, uid, build_payload(booking, uid, subject_name), timeout)
            for uid in recipients
        )
    )
    result = FanoutResult(booking_id=booking_id)
    for uid, error in zip(recipients, outcomes):
        if error is None:
            result.delivered.append(uid)
        else:
            result.failed[uid] = error
            logger.warning("Booking %s: notification to user %s failed: %s", booking_id, uid, error)
    logger.info(
        "Booking %s: notifications %s (%d delivered, %d failed)",
        booking_id,
        result.status.value,
        len(result.delivered),
        len(result.failed),
    )
    return result


class SessionNotifier:
    """In-app notification row per recipient, plus an email when SMTP is configured."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def send(self, user_id: int, payload: dict[str, Any]) -> bool:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    user = await session.get(User, user_id)
                    if user is None:
                        logger.info("User %s not found, skipping notification", user_id)
                        return False
                    if not user.notifications_enabled:
                        # Opted out: nothing to deliver, not a failure
                        logger.debug("Notifications disabled for user %s", user_id)
                        return True
                    session.add(
                        Notification(
                            user_id=user_id,
                            type=payload["type"],
                            title=payload["title"],
                            message=payload["message"],
                            data=payload.get("data") or {},
                            priority=payload.get("priority", "normal"),
                        )
                    )
        except SQLAlchemyError:
            logger.exception("Failed to store notification for user %s", user_id)
            return False
        if settings.email_enabled and user.email:
            await asyncio.to_thread(
                send_session_email, user.email, user.full_name, payload["title"], payload["message"]
            )
        return True
