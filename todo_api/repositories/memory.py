"""Volatile in-process store: the last fallback when no database is usable.

Records live in plain dicts keyed by id; every read hands back a fresh model
instance so callers never mutate stored state.
"""

import itertools
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple, Union

from ..errors import DuplicateEmailError
from ..models import Priority, Role, Todo, User, utcnow
from ..schemas import (
    TodoCreate, TodoFilters, TodoStats, TodoUpdate,
    UserAdminUpdate, UserCreate, UserUpdate,
)
from ..security import get_password_hash
from .base import Repositories, Store, TodoRepository, UserRepository, todo_changes, user_changes


def _todo_sort_key(sort_by: str):
    if sort_by == "priority":
        return lambda record: Priority(record["priority"]).rank
    # Missing values sort first ascending, matching SQLite and MongoDB
    return lambda record: (record[sort_by] is not None, record[sort_by])


class MemoryStore(Store):
    name = "memory"

    def __init__(self):
        self.users: Dict[int, dict] = {}
        self.todos: Dict[int, dict] = {}
        self.lock = threading.RLock()
        self._user_ids = itertools.count(1)
        self._todo_ids = itertools.count(1)

    def next_user_id(self) -> int:
        return next(self._user_ids)

    def next_todo_id(self) -> int:
        return next(self._todo_ids)

    @contextmanager
    def open(self) -> Iterator[Repositories]:
        yield Repositories(MemoryUserRepository(self), MemoryTodoRepository(self))


class MemoryUserRepository(UserRepository):

    def __init__(self, store: MemoryStore):
        self.store = store

    @staticmethod
    def _to_user(record: dict) -> User:
        return User(**record)

    def _find_email(self, email: str) -> Optional[dict]:
        email = email.lower()
        for record in self.store.users.values():
            if record["email"] == email:
                return record
        return None

    def get(self, id: int) -> Optional[User]:
        with self.store.lock:
            record = self.store.users.get(id)
            return self._to_user(record) if record else None

    def get_by_email(self, email: str) -> Optional[User]:
        with self.store.lock:
            record = self._find_email(email)
            return self._to_user(record) if record else None

    def get_multi(self, skip: int = 0, limit: int = 100) -> List[User]:
        with self.store.lock:
            records = sorted(
                self.store.users.values(),
                key=lambda r: (r["created_at"], r["id"]),
                reverse=True,
            )
            return [self._to_user(r) for r in records[skip:skip + limit]]

    def count(self) -> int:
        return len(self.store.users)

    def create(self, user_create: UserCreate, role=None) -> User:
        with self.store.lock:
            if self._find_email(user_create.email):
                raise DuplicateEmailError(user_create.email)
            record = dict(
                id=self.store.next_user_id(),
                name=user_create.name,
                email=user_create.email.lower(),
                role=Role(role or Role.user),
                is_active=True,
                hashed_password=get_password_hash(user_create.password),
                created_at=utcnow(),
                last_login=None,
            )
            self.store.users[record["id"]] = record
            return self._to_user(record)

    def update(self, user_id: int, user_update: Union[UserUpdate, UserAdminUpdate]) -> Optional[User]:
        with self.store.lock:
            record = self.store.users.get(user_id)
            if record is None:
                return None
            changes = user_changes(user_update)
            if "email" in changes:
                existing = self._find_email(changes["email"])
                if existing and existing["id"] != user_id:
                    raise DuplicateEmailError(changes["email"])
            password = getattr(user_update, "password", None)
            if password:
                record["hashed_password"] = get_password_hash(password)
            record.update(changes)
            return self._to_user(record)

    def touch_login(self, user_id: int) -> Optional[User]:
        with self.store.lock:
            record = self.store.users.get(user_id)
            if record is None:
                return None
            record["last_login"] = utcnow()
            return self._to_user(record)

    def delete(self, id: int) -> Optional[User]:
        with self.store.lock:
            record = self.store.users.pop(id, None)
            if record is None:
                return None
            for todo_id in [t["id"] for t in self.store.todos.values() if t["owner_id"] == id]:
                del self.store.todos[todo_id]
            return self._to_user(record)


class MemoryTodoRepository(TodoRepository):

    def __init__(self, store: MemoryStore):
        self.store = store

    @staticmethod
    def _to_todo(record: dict) -> Todo:
        return Todo(**{**record, "tags": list(record["tags"])})

    def _owned(self, owner_id: int) -> List[dict]:
        return [t for t in self.store.todos.values() if t["owner_id"] == owner_id]

    def _find(self, todo_id: int, owner_id: int) -> Optional[dict]:
        record = self.store.todos.get(todo_id)
        if record is None or record["owner_id"] != owner_id:
            return None
        return record

    def get_user_todo(self, todo_id: int, owner_id: int) -> Optional[Todo]:
        with self.store.lock:
            record = self._find(todo_id, owner_id)
            return self._to_todo(record) if record else None

    def list_for_owner(self, owner_id: int, filters: TodoFilters) -> Tuple[List[Todo], int]:
        with self.store.lock:
            records = self._owned(owner_id)
            if filters.completed is not None:
                records = [r for r in records if r["completed"] == filters.completed]
            if filters.priority is not None:
                records = [r for r in records if r["priority"] == filters.priority]
            if filters.search:
                needle = filters.search.lower()
                records = [r for r in records if needle in r["task"].lower()]

            # Two stable passes: id ascending breaks ties in either direction
            records.sort(key=lambda r: r["id"])
            records.sort(key=_todo_sort_key(filters.sort_by), reverse=filters.descending)
            page = records[filters.skip:filters.skip + filters.limit]
            return [self._to_todo(r) for r in page], len(records)

    def get_all(self, skip: int = 0, limit: int = 100) -> List[Todo]:
        with self.store.lock:
            records = sorted(
                self.store.todos.values(),
                key=lambda r: (r["created_at"], r["id"]),
                reverse=True,
            )
            return [self._to_todo(r) for r in records[skip:skip + limit]]

    def create(self, todo_create: TodoCreate, owner_id: int) -> Todo:
        with self.store.lock:
            if owner_id not in self.store.users:
                raise ValueError(f"User with id {owner_id} not found")
            now = utcnow()
            record = dict(
                todo_create.model_dump(),
                id=self.store.next_todo_id(),
                owner_id=owner_id,
                created_at=now,
                updated_at=now,
            )
            self.store.todos[record["id"]] = record
            return self._to_todo(record)

    def update(self, todo_id: int, todo_update: TodoUpdate, owner_id: int) -> Optional[Todo]:
        with self.store.lock:
            record = self._find(todo_id, owner_id)
            if record is None:
                return None
            record.update(todo_changes(todo_update))
            record["updated_at"] = utcnow()
            return self._to_todo(record)

    def delete_user_todo(self, todo_id: int, owner_id: int) -> Optional[Todo]:
        with self.store.lock:
            record = self._find(todo_id, owner_id)
            if record is None:
                return None
            del self.store.todos[todo_id]
            return self._to_todo(record)

    def delete_by_owner(self, owner_id: int) -> int:
        with self.store.lock:
            owned = self._owned(owner_id)
            for record in owned:
                del self.store.todos[record["id"]]
            return len(owned)

    def stats(self, owner_id: int) -> TodoStats:
        with self.store.lock:
            records = self._owned(owner_id)
        now = utcnow()
        completed = sum(1 for r in records if r["completed"])
        return TodoStats(
            total=len(records),
            completed=completed,
            pending=len(records) - completed,
            overdue=sum(
                1 for r in records
                if not r["completed"] and r["due_date"] is not None and r["due_date"] < now
            ),
            high_priority=sum(1 for r in records if r["priority"] == Priority.high),
            medium_priority=sum(1 for r in records if r["priority"] == Priority.medium),
            low_priority=sum(1 for r in records if r["priority"] == Priority.low),
        )
