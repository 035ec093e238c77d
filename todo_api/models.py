from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    """Current time as naive UTC, the form every backend stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Role(str, Enum):
    user = "user"
    admin = "admin"


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK = {Priority.low: 0, Priority.medium: 1, Priority.high: 2}


class UserBase(SQLModel):
    """Base model for User with common fields."""
    name: str = Field(max_length=50)
    email: str = Field(index=True, unique=True)
    role: Role = Field(default=Role.user)
    is_active: bool = Field(default=True)


class User(UserBase, table=True):
    """User DB model for storing in the database."""
    id: Optional[int] = Field(default=None, primary_key=True)
    hashed_password: str = Field()
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    last_login: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    todos: List["Todo"] = Relationship(
        back_populates="owner",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin

    def verify_password(self, password: str) -> bool:
        """Verify password against the stored hash."""
        # Import here to avoid circular imports
        from .security import verify_password
        return verify_password(password, self.hashed_password)


class TodoBase(SQLModel):
    """Base model for Todo with common fields."""
    task: str = Field(index=True, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    completed: bool = Field(default=False, index=True)
    priority: Priority = Field(default=Priority.medium, index=True)


class Todo(TodoBase, table=True):
    """Todo DB model for storing in the database."""
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: Optional[int] = Field(
        default=None, foreign_key="user.id", nullable=False, index=True, ondelete="CASCADE"
    )
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    # Timestamps are naive UTC, so the columns carry no zone
    due_date: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    owner: Optional[User] = Relationship(back_populates="todos")
