from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    type: str = Field(max_length=40)
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    priority: str = "normal"
    is_read: bool = False
    created_at: datetime = Field(default_factory=_utc_naive_now)
