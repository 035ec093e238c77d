import os

# Settings are read on import, so the environment comes first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.pop("MONGODB_URI", None)
os.environ.pop("ADMIN_EMAIL", None)

import uuid

import mongomock
import pytest
from datetime import timedelta
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine
from sqlmodel.pool import StaticPool

from todo_api.database import get_repositories, get_store
from todo_api.main import app
from todo_api.models import Role
from todo_api.repositories.memory import MemoryStore
from todo_api.repositories.mongo import MongoStore
from todo_api.repositories.sql import SQLStore
from todo_api.schemas import TodoCreate, UserCreate
from todo_api.security import create_user_token, pwd_context

# Cheap hashes keep the suite fast
pwd_context.update(bcrypt__rounds=4)

BACKENDS = ["sql", "memory", "mongo"]


# Use in-memory SQLite for testing
@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="store", params=BACKENDS)
def store_fixture(request):
    """The same tests run against every storage backend."""
    if request.param == "sql":
        store = SQLStore(request.getfixturevalue("engine"))
    elif request.param == "mongo":
        store = MongoStore(mongomock.MongoClient(), f"todo_api_test_{uuid.uuid4().hex}")
        store.init_db()
    else:
        store = MemoryStore()
    yield store
    if request.param == "mongo":
        store.client.drop_database(store.db.name)


@pytest.fixture(name="repos")
def repos_fixture(store):
    with store.open() as repos:
        yield repos


@pytest.fixture(name="client")
def client_fixture(store, repos):
    # Dependencies override
    def get_test_repositories():
        yield repos

    app.dependency_overrides = {}
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_repositories] = get_test_repositories

    yield TestClient(app)

    # Restore original settings
    app.dependency_overrides = {}


@pytest.fixture(name="test_user")
def test_user_fixture(repos):
    """Create a test user for testing."""
    user = repos.users.get_by_email("test@example.com")
    if not user:
        user = repos.users.create(UserCreate(
            name="Test User",
            email="test@example.com",
            password="testpassword",
        ))
    return user


@pytest.fixture(name="test_admin")
def test_admin_fixture(repos):
    """Create a test admin user for testing."""
    admin = repos.users.get_by_email("admin@example.com")
    if not admin:
        admin = repos.users.create(
            UserCreate(name="Admin", email="admin@example.com", password="adminpassword"),
            role=Role.admin,
        )
    return admin


@pytest.fixture(name="test_todo")
def test_todo_fixture(repos, test_user):
    """Create a test todo for testing."""
    return repos.todos.create(
        TodoCreate(task="Test Todo", description="This is a test todo"),
        owner_id=test_user.id,
    )


@pytest.fixture(name="user_token_headers")
def user_token_headers_fixture(test_user):
    """Create authorization headers with user JWT token."""
    access_token = create_user_token(test_user, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture(name="admin_token_headers")
def admin_token_headers_fixture(test_admin):
    """Create authorization headers with admin JWT token."""
    access_token = create_user_token(test_admin, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {access_token}"}
