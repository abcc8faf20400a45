import asyncio
import os
import tempfile
from datetime import UTC, date, datetime, time

# Settings are read at import time; point them at a throwaway database first
_DB_DIR = tempfile.mkdtemp(prefix="coachsched-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/app.db"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENV"] = "test"
os.environ["SMTP_HOST"] = ""

import pytest  # noqa: E402

import coachsched.models  # noqa: E402,F401 - register tables
from coachsched.core.db import build_engine, build_session_maker, init_db  # noqa: E402
from coachsched.models.booking import Booking, BookingStatus, MeetingPlatform  # noqa: E402
from coachsched.models.group import Group, GroupMember  # noqa: E402
from coachsched.models.provider_connection import ProviderConnection  # noqa: E402
from coachsched.models.user import User, UserRole  # noqa: E402
from coachsched.providers.base import MeetingDetails, MeetingResult, SchedulingProvider  # noqa: E402
from coachsched.services.busy_intervals import ExternalCalendarEvent  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(anyio_backend, tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


class Factory:
    """Inserts rows through their own short-lived sessions."""

    def __init__(self, session_maker):
        self.session_maker = session_maker
        self._seq = 0

    async def _save(self, obj):
        async with self.session_maker() as s:
            s.add(obj)
            await s.commit()
            await s.refresh(obj)
        return obj

    async def user(self, full_name=None, role=UserRole.CLIENT, notifications_enabled=True) -> User:
        self._seq += 1
        return await self._save(
            User(
                email=f"user{self._seq}@example.com",
                full_name=full_name or f"User {self._seq}",
                role=role.value,
                notifications_enabled=notifications_enabled,
            )
        )

    async def coach(self, full_name="Coach Carter") -> User:
        return await self.user(full_name=full_name, role=UserRole.COACH)

    async def group(self, coach: User, members: list[User], name="Morning Group") -> Group:
        group = await self._save(Group(coach_id=coach.id, name=name))
        for member in members:
            await self._save(GroupMember(group_id=group.id, user_id=member.id))
        return group

    async def booking(
        self,
        coach: User,
        session_date: date,
        session_time: time,
        duration_minutes: int = 60,
        client: User | None = None,
        group: Group | None = None,
        status: BookingStatus = BookingStatus.SCHEDULED,
        title: str = "Session",
        origin_timezone: str = "UTC",
    ) -> Booking:
        return await self._save(
            Booking(
                coach_id=coach.id,
                client_id=client.id if client else None,
                group_id=group.id if group else None,
                title=title,
                session_date=session_date,
                session_time=session_time,
                duration_minutes=duration_minutes,
                status=status.value,
                meeting_platform=MeetingPlatform.NONE.value,
                origin_timezone=origin_timezone,
            )
        )

    async def connection(self, coach: User, provider: str, **kwargs) -> ProviderConnection:
        kwargs.setdefault("access_token", "access-token")
        return await self._save(ProviderConnection(coach_id=coach.id, provider=provider, **kwargs))


@pytest.fixture
def factory(session_maker):
    return Factory(session_maker)


def connected(provider: str = "google") -> ProviderConnection:
    return ProviderConnection(coach_id=0, provider=provider, access_token="access-token")


class FakeProvider(SchedulingProvider):
    """Calendar feed and meeting creator with scripted latency and failures."""

    name = "fake"

    def __init__(
        self,
        events: list[ExternalCalendarEvent] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
        is_connected: bool = True,
        join_link: str = "https://meet.example.com/abc-defg-hij",
    ):
        super().__init__(connected() if is_connected else None)
        self.events = events or []
        self.delay = delay
        self.error = error
        self.join_link = join_link
        self.busy_calls = 0
        self.meetings: list[tuple[MeetingDetails, list[str]]] = []

    async def list_busy_events(self, target_date, zone):
        self.busy_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.events)

    async def create_meeting(self, details, attendee_emails):
        self.meetings.append((details, attendee_emails))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return MeetingResult(join_link=self.join_link, external_meeting_id=f"evt-{details.booking_id}")


class FakeNotifier:
    def __init__(self, reject=(), explode=(), hang=(), delay=1.0):
        self.reject = set(reject)
        self.explode = set(explode)
        self.hang = set(hang)
        self.delay = delay
        self.sent: list[tuple[int, dict]] = []

    async def send(self, user_id, payload):
        self.sent.append((user_id, payload))
        if user_id in self.explode:
            raise RuntimeError("mail relay refused connection")
        if user_id in self.hang:
            await asyncio.sleep(self.delay)
        return user_id not in self.reject


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)
