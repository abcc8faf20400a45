from enum import Enum

from sqlmodel import Field, SQLModel


class UserRole(str, Enum):
    COACH = "coach"
    CLIENT = "client"
    ADMIN = "admin"


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    full_name: str | None = None
    role: str = Field(default=UserRole.CLIENT.value, max_length=20)
    notifications_enabled: bool = True


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)

