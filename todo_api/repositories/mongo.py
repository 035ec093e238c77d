"""MongoDB backend built on pymongo.

Documents use integer ``_id`` values drawn from a ``counters`` collection so
ids look the same on every backend.
"""

import re
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple, Union

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..errors import DuplicateEmailError
from ..models import PRIORITY_RANK, Priority, Role, Todo, User, utcnow
from ..schemas import (
    TodoCreate, TodoFilters, TodoStats, TodoUpdate,
    UserAdminUpdate, UserCreate, UserUpdate,
)
from ..security import get_password_hash
from .base import Repositories, Store, TodoRepository, UserRepository, todo_changes, user_changes

_SORT_FIELDS = {
    "created_at": "created_at",
    "due_date": "due_date",
    "priority": "priority_rank",
    "task": "task",
}


def next_id(db: Database, name: str) -> int:
    counter = db.counters.find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


def _enum_values(data: dict) -> dict:
    return {k: (v.value if isinstance(v, (Role, Priority)) else v) for k, v in data.items()}


class MongoUserRepository(UserRepository):

    def __init__(self, db: Database):
        self.db = db
        self.collection = db.users

    @staticmethod
    def _to_user(doc: Optional[dict]) -> Optional[User]:
        if doc is None:
            return None
        data = dict(doc)
        data["id"] = data.pop("_id")
        data["role"] = Role(data["role"])
        return User(**data)

    def get(self, id: int) -> Optional[User]:
        return self._to_user(self.collection.find_one({"_id": id}))

    def get_by_email(self, email: str) -> Optional[User]:
        return self._to_user(self.collection.find_one({"email": email.lower()}))

    def get_multi(self, skip: int = 0, limit: int = 100) -> List[User]:
        cursor = (
            self.collection.find()
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .skip(skip)
            .limit(limit)
        )
        return [self._to_user(doc) for doc in cursor]

    def count(self) -> int:
        return self.collection.count_documents({})

    def create(self, user_create: UserCreate, role=None) -> User:
        email = user_create.email.lower()
        if self.collection.find_one({"email": email}):
            raise DuplicateEmailError(email)
        doc = {
            "_id": next_id(self.db, "users"),
            "name": user_create.name,
            "email": email,
            "role": Role(role or Role.user).value,
            "is_active": True,
            "hashed_password": get_password_hash(user_create.password),
            "created_at": utcnow(),
            "last_login": None,
        }
        try:
            self.collection.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateEmailError(email) from e
        except PyMongoError as e:
            raise ValueError(f"Error creating user: {str(e)}")
        return self._to_user(doc)

    def update(self, user_id: int, user_update: Union[UserUpdate, UserAdminUpdate]) -> Optional[User]:
        if self.collection.find_one({"_id": user_id}) is None:
            return None

        changes = _enum_values(user_changes(user_update))
        if "email" in changes:
            existing = self.collection.find_one({"email": changes["email"]})
            if existing and existing["_id"] != user_id:
                raise DuplicateEmailError(changes["email"])
        password = getattr(user_update, "password", None)
        if password:
            changes["hashed_password"] = get_password_hash(password)
        if not changes:
            return self.get(user_id)

        try:
            doc = self.collection.find_one_and_update(
                {"_id": user_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise DuplicateEmailError(changes.get("email")) from e
        except PyMongoError as e:
            raise ValueError(f"Error updating user: {str(e)}")
        return self._to_user(doc)

    def touch_login(self, user_id: int) -> Optional[User]:
        doc = self.collection.find_one_and_update(
            {"_id": user_id},
            {"$set": {"last_login": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return self._to_user(doc)

    def delete(self, id: int) -> Optional[User]:
        doc = self.collection.find_one_and_delete({"_id": id})
        if doc is not None:
            self.db.todos.delete_many({"owner_id": id})
        return self._to_user(doc)


class MongoTodoRepository(TodoRepository):

    def __init__(self, db: Database):
        self.db = db
        self.collection = db.todos

    @staticmethod
    def _to_todo(doc: Optional[dict]) -> Optional[Todo]:
        if doc is None:
            return None
        data = dict(doc)
        data["id"] = data.pop("_id")
        data.pop("priority_rank", None)
        data["priority"] = Priority(data["priority"])
        data["tags"] = list(data.get("tags") or [])
        return Todo(**data)

    def get_user_todo(self, todo_id: int, owner_id: int) -> Optional[Todo]:
        return self._to_todo(self.collection.find_one({"_id": todo_id, "owner_id": owner_id}))

    def list_for_owner(self, owner_id: int, filters: TodoFilters) -> Tuple[List[Todo], int]:
        query = {"owner_id": owner_id}
        if filters.completed is not None:
            query["completed"] = filters.completed
        if filters.priority is not None:
            query["priority"] = filters.priority.value
        if filters.search:
            query["task"] = {"$regex": re.escape(filters.search), "$options": "i"}

        total = self.collection.count_documents(query)
        direction = DESCENDING if filters.descending else ASCENDING
        cursor = (
            self.collection.find(query)
            .sort([(_SORT_FIELDS[filters.sort_by], direction), ("_id", ASCENDING)])
            .skip(filters.skip)
            .limit(filters.limit)
        )
        return [self._to_todo(doc) for doc in cursor], total

    def get_all(self, skip: int = 0, limit: int = 100) -> List[Todo]:
        cursor = (
            self.collection.find()
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .skip(skip)
            .limit(limit)
        )
        return [self._to_todo(doc) for doc in cursor]

    def create(self, todo_create: TodoCreate, owner_id: int) -> Todo:
        if self.db.users.find_one({"_id": owner_id}, {"_id": 1}) is None:
            raise ValueError(f"User with id {owner_id} not found")
        now = utcnow()
        doc = _enum_values(todo_create.model_dump())
        doc.update(
            _id=next_id(self.db, "todos"),
            owner_id=owner_id,
            priority_rank=PRIORITY_RANK[todo_create.priority],
            created_at=now,
            updated_at=now,
        )
        try:
            self.collection.insert_one(doc)
        except PyMongoError as e:
            raise ValueError(f"Error creating todo: {str(e)}")
        return self._to_todo(doc)

    def update(self, todo_id: int, todo_update: TodoUpdate, owner_id: int) -> Optional[Todo]:
        changes = todo_changes(todo_update)
        if "priority" in changes:
            changes["priority_rank"] = PRIORITY_RANK[changes["priority"]]
        changes = _enum_values(changes)
        changes["updated_at"] = utcnow()
        try:
            doc = self.collection.find_one_and_update(
                {"_id": todo_id, "owner_id": owner_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise ValueError(f"Error updating todo: {str(e)}")
        return self._to_todo(doc)

    def delete_user_todo(self, todo_id: int, owner_id: int) -> Optional[Todo]:
        return self._to_todo(self.collection.find_one_and_delete({"_id": todo_id, "owner_id": owner_id}))

    def delete_by_owner(self, owner_id: int) -> int:
        return self.collection.delete_many({"owner_id": owner_id}).deleted_count

    def stats(self, owner_id: int) -> TodoStats:
        count = self.collection.count_documents
        total = count({"owner_id": owner_id})
        completed = count({"owner_id": owner_id, "completed": True})
        overdue = count({
            "owner_id": owner_id,
            "completed": False,
            "due_date": {"$ne": None, "$lt": utcnow()},
        })
        return TodoStats(
            total=total,
            completed=completed,
            pending=total - completed,
            overdue=overdue,
            high_priority=count({"owner_id": owner_id, "priority": Priority.high.value}),
            medium_priority=count({"owner_id": owner_id, "priority": Priority.medium.value}),
            low_priority=count({"owner_id": owner_id, "priority": Priority.low.value}),
        )


class MongoStore(Store):
    """Document backend; repositories are stateless wrappers over one database."""

    name = "mongo"

    def __init__(self, client: MongoClient, db_name: str):
        self.client = client
        self.db = client[db_name]

    def init_db(self) -> None:
        self.db.users.create_index("email", unique=True)
        self.db.todos.create_index("owner_id")
        self.db.todos.create_index([("owner_id", ASCENDING), ("created_at", DESCENDING)])

    @contextmanager
    def open(self) -> Iterator[Repositories]:
        yield Repositories(MongoUserRepository(self.db), MongoTodoRepository(self.db))

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except PyMongoError:
            return False

    def close(self) -> None:
        self.client.close()
