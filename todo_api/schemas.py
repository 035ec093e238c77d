from datetime import datetime
from typing import Annotated, Generic, List, Literal, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, EmailStr

from sqlmodel import SQLModel

from .models import Priority, Role, to_naive_utc

T = TypeVar("T")


def _check_password(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters long")
    return v


def _check_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name is required")
    if len(v) > 50:
        raise ValueError("Name must be at most 50 characters long")
    return v


def _check_task(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Task is required")
    if len(v) > 200:
        raise ValueError("Task must be at most 200 characters long")
    return v


def _check_description(v: str) -> str:
    if len(v) > 1000:
        raise ValueError("Description must be at most 1000 characters long")
    return v


def _lower(v: str) -> str:
    return v.lower()


def _clean_tags(v: List[str]) -> List[str]:
    cleaned = []
    for tag in v:
        tag = tag.strip()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


Name = Annotated[str, AfterValidator(_check_name)]
Email = Annotated[EmailStr, AfterValidator(_lower)]
Password = Annotated[str, AfterValidator(_check_password)]
TaskText = Annotated[str, AfterValidator(_check_task)]
Description = Annotated[str, AfterValidator(_check_description)]
Tags = Annotated[List[str], AfterValidator(_clean_tags)]
DueDate = Annotated[datetime, AfterValidator(to_naive_utc)]


# Users

class UserCreate(SQLModel):
    """Schema for user registration requests."""
    name: Name
    email: Email
    password: Password


class UserRead(SQLModel):
    """Schema for user read responses."""
    id: int
    name: str
    email: str
    role: Role
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime] = None


class UserUpdate(SQLModel):
    """Schema for self-service user update requests."""
    name: Optional[Name] = None
    email: Optional[Email] = None
    password: Optional[Password] = None


class UserAdminUpdate(SQLModel):
    """Schema for admin changes to another account."""
    name: Optional[Name] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class LoginRequest(BaseModel):
    email: Email
    password: str


class AuthResult(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserRead


# Todos

class TodoCreate(SQLModel):
    """Schema for todo creation requests."""
    task: TaskText
    description: Optional[Description] = None
    completed: bool = False
    priority: Priority = Priority.medium
    due_date: Optional[DueDate] = None
    tags: Tags = []


class TodoUpdate(SQLModel):
    """Schema for todo update requests; only fields sent are changed."""
    task: Optional[TaskText] = None
    description: Optional[Description] = None
    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    due_date: Optional[DueDate] = None
    tags: Optional[Tags] = None


class TodoRead(SQLModel):
    """Schema for todo read responses."""
    id: int
    task: str
    description: Optional[str] = None
    completed: bool
    priority: Priority
    due_date: Optional[datetime] = None
    tags: List[str] = []
    owner_id: int
    created_at: datetime
    updated_at: datetime


class OwnerSummary(SQLModel):
    id: int
    name: str
    email: str


class TodoReadWithOwner(TodoRead):
    """Schema for todo read responses with owner included."""
    owner: Optional[OwnerSummary] = None


class UserReadWithTodos(UserRead):
    """Schema for user read responses with todos included."""
    todos: List[TodoRead] = []
    todo_count: int = 0


class TodoFilters(BaseModel):
    """Listing options for a user's todos."""
    page: int = 1
    limit: int = 10
    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    search: Optional[str] = None
    sort_by: Literal["created_at", "due_date", "priority", "task"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def descending(self) -> bool:
        return self.sort_order == "desc"


class TodoStats(BaseModel):
    total: int = 0
    completed: int = 0
    pending: int = 0
    overdue: int = 0
    high_priority: int = 0
    medium_priority: int = 0
    low_priority: int = 0


class DeleteResult(BaseModel):
    id: int
    deleted: bool = True


# Envelopes

class Envelope(BaseModel, Generic[T]):
    """Successful response wrapper."""
    success: bool = True
    data: T


class PageEnvelope(BaseModel, Generic[T]):
    """Successful list response wrapper with paging information."""
    success: bool = True
    data: List[T]
    page: int
    limit: int
    total: int


class ErrorDetail(BaseModel):
    field: str
    message: str
    type: str


class ErrorEnvelope(BaseModel):
    """Failed response wrapper."""
    success: bool = False
    error: str
    details: Optional[List[ErrorDetail]] = None
