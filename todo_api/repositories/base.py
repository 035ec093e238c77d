from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple, Union

from ..models import Todo, User
from ..schemas import (
    TodoCreate, TodoFilters, TodoStats, TodoUpdate,
    UserAdminUpdate, UserCreate, UserUpdate,
)

# Columns that refuse an explicit null in a partial update
NON_NULLABLE_TODO_FIELDS = {"task", "completed", "priority", "tags"}
NON_NULLABLE_USER_FIELDS = {"name", "email", "role", "is_active"}


def todo_changes(todo_update: TodoUpdate) -> Dict[str, Any]:
    """Fields actually sent in a partial todo update."""
    update_data = todo_update.model_dump(exclude_unset=True)
    return {
        key: value for key, value in update_data.items()
        if value is not None or key not in NON_NULLABLE_TODO_FIELDS
    }


def user_changes(user_update: Union[UserUpdate, UserAdminUpdate]) -> Dict[str, Any]:
    """Fields actually sent in a partial user update, password excluded."""
    update_data = user_update.model_dump(exclude_unset=True, exclude={"password"})
    return {
        key: value for key, value in update_data.items()
        if value is not None or key not in NON_NULLABLE_USER_FIELDS
    }


class UserRepository(ABC):
    """Operations on user accounts, identical on every backend."""

    @abstractmethod
    def get(self, id: int) -> Optional[User]:
        """Get a user by ID."""

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[User]:
        """Get a user by email."""

    @abstractmethod
    def get_multi(self, skip: int = 0, limit: int = 100) -> List[User]:
        """Users newest first, with pagination."""

    @abstractmethod
    def count(self) -> int:
        ...

    @abstractmethod
    def create(self, user_create: UserCreate, role=None) -> User:
        """Create a new user; raises DuplicateEmailError."""

    @abstractmethod
    def update(self, user_id: int, user_update: Union[UserUpdate, UserAdminUpdate]) -> Optional[User]:
        """Partially update a user; None when the user does not exist."""

    @abstractmethod
    def touch_login(self, user_id: int) -> Optional[User]:
        """Record a successful login."""

    @abstractmethod
    def delete(self, id: int) -> Optional[User]:
        """Delete a user and every todo they own."""


class TodoRepository(ABC):
    """Operations on todos, identical on every backend."""

    @abstractmethod
    def get_user_todo(self, todo_id: int, owner_id: int) -> Optional[Todo]:
        """Get a specific todo owned by a user."""

    @abstractmethod
    def list_for_owner(self, owner_id: int, filters: TodoFilters) -> Tuple[List[Todo], int]:
        """One page of a user's todos and the total number matching."""

    def get_by_owner(self, owner_id: int, skip: int = 0, limit: int = 100) -> List[Todo]:
        """Get todos by owner ID, oldest first."""
        filters = TodoFilters(page=1, limit=skip + limit, sort_order="asc")
        items, _ = self.list_for_owner(owner_id, filters)
        return items[skip:]

    @abstractmethod
    def get_all(self, skip: int = 0, limit: int = 100) -> List[Todo]:
        """Every user's todos, newest first."""

    @abstractmethod
    def create(self, todo_create: TodoCreate, owner_id: int) -> Todo:
        """Create a new todo for a user."""

    @abstractmethod
    def update(self, todo_id: int, todo_update: TodoUpdate, owner_id: int) -> Optional[Todo]:
        """Update a todo owned by a user."""

    @abstractmethod
    def delete_user_todo(self, todo_id: int, owner_id: int) -> Optional[Todo]:
        """Delete a todo owned by a user."""

    @abstractmethod
    def delete_by_owner(self, owner_id: int) -> int:
        """Delete all of a user's todos, returning how many went."""

    @abstractmethod
    def stats(self, owner_id: int) -> TodoStats:
        ...


class Repositories(NamedTuple):
    users: UserRepository
    todos: TodoRepository


class Store(ABC):
    """A storage backend handing out repositories for one unit of work."""

    name: str = "store"

    @abstractmethod
    @contextmanager
    def open(self) -> Iterator[Repositories]:
        ...

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass
