from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class ProviderName(str, Enum):
    GOOGLE = "google"
    ZOOM = "zoom"
    MICROSOFT = "microsoft"


class ProviderConnection(SQLModel, table=True):
    """OAuth connection stored by the integrations flow. Read-only for scheduling."""

    __tablename__ = "provider_connections"
    __table_args__ = (UniqueConstraint("coach_id", "provider", name="uq_provider_connections_coach_provider"),)

    id: int | None = Field(default=None, primary_key=True)
    coach_id: int = Field(foreign_key="users.id", index=True)
    provider: str = Field(max_length=20)
    access_token: str
    expires_at: datetime | None = None
    is_active: bool = True
    calendar_id: str = "primary"
    account_email: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(UTC).replace(tzinfo=None)
        expires_at = self.expires_at
        if expires_at.tzinfo is not None:
            expires_at = expires_at.astimezone(UTC).replace(tzinfo=None)
        return expires_at <= now
