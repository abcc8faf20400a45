from sqlmodel import Field, SQLModel


class Group(SQLModel, table=True):
    __tablename__ = "groups"
    id: int | None = Field(default=None, primary_key=True)
    coach_id: int = Field(foreign_key="users.id", index=True)
    name: str


class GroupMember(SQLModel, table=True):
    __tablename__ = "group_members"
    id: int | None = Field(default=None, primary_key=True)
    group_id: int = Field(foreign_key="groups.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
