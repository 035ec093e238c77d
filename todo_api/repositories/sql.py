from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple, Union, cast

from sqlalchemy import case, func, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.sql.selectable import Select
from sqlmodel import Session, SQLModel, col, select

from ..errors import DuplicateEmailError
from ..models import PRIORITY_RANK, Role, Todo, User, utcnow
from ..schemas import (
    TodoCreate, TodoFilters, TodoStats, TodoUpdate,
    UserAdminUpdate, UserCreate, UserUpdate,
)
from ..security import get_password_hash
from .base import Repositories, Store, TodoRepository, UserRepository, todo_changes, user_changes

_priority_rank = case(
    {priority.value: rank for priority, rank in PRIORITY_RANK.items()},
    value=col(Todo.priority),
)

_SORT_COLUMNS = {
    "created_at": col(Todo.created_at),
    "due_date": col(Todo.due_date),
    "priority": _priority_rank,
    "task": col(Todo.task),
}


class SQLUserRepository(UserRepository):
    """User repository over a SQLModel session."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, id: int) -> Optional[User]:
        return self.session.get(User, id)

    def get_by_email(self, email: str) -> Optional[User]:
        query = cast(Select, select(User).where(User.email == email.lower()))
        return self.session.exec(query).first()

    def get_multi(self, skip: int = 0, limit: int = 100) -> List[User]:
        query = (
            select(User)
            .order_by(col(User.created_at).desc(), col(User.id).desc())
            .offset(skip)
            .limit(limit)
        )
        return list(self.session.exec(query).all())

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(User)).one()

    def create(self, user_create: UserCreate, role=None) -> User:
        if self.get_by_email(user_create.email):
            raise DuplicateEmailError(user_create.email)
        try:
            user_data = user_create.model_dump(exclude={"password"})
            db_user = User(
                **user_data,
                role=role or Role.user,
                hashed_password=get_password_hash(user_create.password),
            )
            self.session.add(db_user)
            self.session.commit()
            self.session.refresh(db_user)
            return db_user
        except IntegrityError as e:
            self.session.rollback()
            if "email" in str(e.orig).lower():
                raise DuplicateEmailError(user_create.email)
            raise ValueError(f"Error creating user: {str(e)}")
        except SQLAlchemyError as e:
            self.session.rollback()
            raise ValueError(f"Error creating user: {str(e)}")

    def update(self, user_id: int, user_update: Union[UserUpdate, UserAdminUpdate]) -> Optional[User]:
        db_user = self.get(user_id)
        if not db_user:
            return None

        changes = user_changes(user_update)
        if "email" in changes:
            existing = self.get_by_email(changes["email"])
            if existing and existing.id != user_id:
                raise DuplicateEmailError(changes["email"])

        try:
            # Handle password update separately
            password = getattr(user_update, "password", None)
            if password:
                db_user.hashed_password = get_password_hash(password)

            for key, value in changes.items():
                setattr(db_user, key, value)

            self.session.add(db_user)
            self.session.commit()
            self.session.refresh(db_user)
            return db_user
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateEmailError(changes.get("email")) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise ValueError(f"Error updating user: {str(e)}")

    def touch_login(self, user_id: int) -> Optional[User]:
        db_user = self.get(user_id)
        if db_user:
            db_user.last_login = utcnow()
            self.session.add(db_user)
            self.session.commit()
            self.session.refresh(db_user)
        return db_user

    def delete(self, id: int) -> Optional[User]:
        db_user = self.get(id)
        if db_user:
            try:
                # Relationship cascade removes the user's todos
                self.session.delete(db_user)
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                raise ValueError(f"Error deleting user: {str(e)}")
        return db_user


class SQLTodoRepository(TodoRepository):
    """Todo repository over a SQLModel session."""

    def __init__(self, session: Session):
        self.session = session

    def _owned(self, owner_id: int):
        return select(Todo).where(Todo.owner_id == owner_id)

    def _count(self, *conditions) -> int:
        query = select(func.count()).select_from(Todo).where(*conditions)
        return self.session.exec(query).one()

    def get_user_todo(self, todo_id: int, owner_id: int) -> Optional[Todo]:
        query = cast(Select, select(Todo)
                     .where(Todo.id == todo_id, Todo.owner_id == owner_id))
        return self.session.exec(query).first()

    def list_for_owner(self, owner_id: int, filters: TodoFilters) -> Tuple[List[Todo], int]:
        query = self._owned(owner_id)
        if filters.completed is not None:
            query = query.where(Todo.completed == filters.completed)
        if filters.priority is not None:
            query = query.where(Todo.priority == filters.priority)
        if filters.search:
            query = query.where(col(Todo.task).icontains(filters.search, autoescape=True))

        total = self.session.exec(select(func.count()).select_from(query.subquery())).one()

        sort_column = _SORT_COLUMNS[filters.sort_by]
        sort_column = sort_column.desc() if filters.descending else sort_column.asc()
        query = (
            query.order_by(sort_column, col(Todo.id).asc())
            .offset(filters.skip)
            .limit(filters.limit)
        )
        return list(self.session.exec(query).all()), total

    def get_all(self, skip: int = 0, limit: int = 100) -> List[Todo]:
        query = (
            select(Todo)
            .order_by(col(Todo.created_at).desc(), col(Todo.id).desc())
            .offset(skip)
            .limit(limit)
        )
        return list(self.session.exec(query).all())

    def create(self, todo_create: TodoCreate, owner_id: int) -> Todo:
        if not self.session.get(User, owner_id):
            raise ValueError(f"User with id {owner_id} not found")
        try:
            db_todo = Todo(**todo_create.model_dump(), owner_id=owner_id)
            self.session.add(db_todo)
            self.session.commit()
            self.session.refresh(db_todo)
            return db_todo
        except SQLAlchemyError as e:
            self.session.rollback()
            raise ValueError(f"Error creating todo: {str(e)}")

    def update(self, todo_id: int, todo_update: TodoUpdate, owner_id: int) -> Optional[Todo]:
        db_todo = self.get_user_todo(todo_id, owner_id)
        if not db_todo:
            return None

        try:
            for key, value in todo_changes(todo_update).items():
                setattr(db_todo, key, value)
            db_todo.updated_at = utcnow()

            self.session.add(db_todo)
            self.session.commit()
            self.session.refresh(db_todo)
            return db_todo
        except SQLAlchemyError as e:
            self.session.rollback()
            raise ValueError(f"Error updating todo: {str(e)}")

    def delete_user_todo(self, todo_id: int, owner_id: int) -> Optional[Todo]:
        db_todo = self.get_user_todo(todo_id, owner_id)
        if db_todo:
            try:
                self.session.delete(db_todo)
                self.session.commit()
                return db_todo
            except SQLAlchemyError as e:
                self.session.rollback()
                raise ValueError(f"Error deleting todo: {str(e)}")
        return None

    def delete_by_owner(self, owner_id: int) -> int:
        todos = self.session.exec(self._owned(owner_id)).all()
        try:
            for db_todo in todos:
                self.session.delete(db_todo)
            self.session.commit()
            return len(todos)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise ValueError(f"Error deleting todos: {str(e)}")

    def stats(self, owner_id: int) -> TodoStats:
        mine = col(Todo.owner_id) == owner_id
        total = self._count(mine)
        completed = self._count(mine, col(Todo.completed).is_(True))
        overdue = self._count(
            mine,
            col(Todo.completed).is_(False),
            col(Todo.due_date).is_not(None),
            col(Todo.due_date) < utcnow(),
        )
        by_priority = {
            priority.value: self._count(mine, col(Todo.priority) == priority)
            for priority in PRIORITY_RANK
        }
        return TodoStats(
            total=total,
            completed=completed,
            pending=total - completed,
            overdue=overdue,
            high_priority=by_priority["high"],
            medium_priority=by_priority["medium"],
            low_priority=by_priority["low"],
        )


class SQLStore(Store):
    """Relational backend; one session per unit of work."""

    name = "sql"

    def __init__(self, engine: Engine):
        self.engine = engine

    def init_db(self) -> None:
        """Initialize database by creating all tables."""
        SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def open(self) -> Iterator[Repositories]:
        with Session(self.engine) as session:
            yield Repositories(SQLUserRepository(session), SQLTodoRepository(session))

    def ping(self) -> bool:
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    def close(self) -> None:
        self.engine.dispose()
