"""Storage backend selection and the request-scoped dependencies.

MongoDB is the primary store. When it is not configured or does not answer,
the SQL database at ``DATABASE_URL`` takes over, and when that cannot be
initialized either the service keeps running on a volatile in-memory store.
"""

from typing import Annotated, Generator, Optional

from fastapi import Depends, Request

from .config import Settings, get_settings
from .errors import StorageUnavailableError
from .logger import logger
from .repositories.base import Repositories, Store


def connect_mongo(settings: Settings) -> Store:
    from pymongo import MongoClient
    from pymongo.errors import PyMongoError

    from .repositories.mongo import MongoStore

    if not settings.mongodb_uri:
        raise StorageUnavailableError("MONGODB_URI is not set")
    client = None
    try:
        client = MongoClient(settings.mongodb_uri, serverSelectionTimeoutMS=settings.mongodb_timeout_ms)
        client.admin.command("ping")
        store = MongoStore(client, settings.mongodb_db)
        store.init_db()
    except PyMongoError as e:
        if client is not None:
            client.close()
        raise StorageUnavailableError(f"MongoDB unreachable: {e}") from e
    return store


def connect_sql(settings: Settings) -> Store:
    from sqlalchemy.exc import SQLAlchemyError
    from sqlmodel import create_engine

    from .repositories.sql import SQLStore

    engine = create_engine(
        settings.database_url,
        echo=settings.sql_echo,
        connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
    )
    store = SQLStore(engine)
    try:
        store.init_db()
    except SQLAlchemyError as e:
        engine.dispose()
        raise StorageUnavailableError(f"SQL database unusable: {e}") from e
    return store


def connect_memory(settings: Settings) -> Store:
    from .repositories.memory import MemoryStore

    return MemoryStore()


_CONNECTORS = {
    "mongo": connect_mongo,
    "sql": connect_sql,
    "memory": connect_memory,
}


def init_store(settings: Optional[Settings] = None) -> Store:
    """Open the configured backend, falling back in auto mode."""
    settings = settings or get_settings()

    if settings.storage_backend != "auto":
        store = _CONNECTORS[settings.storage_backend](settings)
        logger.info(f"Using {store.name} storage backend")
        return store

    candidates = ["sql", "memory"]
    if settings.mongodb_uri:
        candidates.insert(0, "mongo")
    else:
        logger.info("MONGODB_URI not set, skipping MongoDB")

    for name in candidates:
        try:
            store = _CONNECTORS[name](settings)
        except StorageUnavailableError as e:
            logger.warning(f"{e}; falling back")
            continue
        logger.info(f"Using {store.name} storage backend")
        return store
    # connect_memory cannot fail
    raise StorageUnavailableError("No storage backend available")


def get_store(request: Request) -> Store:
    """Dependency returning the store opened at startup."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StorageUnavailableError("Storage backend not initialized")
    return store


def get_repositories(
        store: Annotated[Store, Depends(get_store)],
) -> Generator[Repositories, None, None]:
    """Dependency for getting the repositories of one request."""
    with store.open() as repos:
        yield repos
