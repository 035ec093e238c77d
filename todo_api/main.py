import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .database import init_store
from .errors import register_error_handlers
from .logger import logger
from .models import Role
from .repositories.base import Store
from .routers import admin, auth, system, todos
from .schemas import UserCreate


def bootstrap_admin(store: Store, settings: Settings) -> None:
    """Create the admin account named in the environment, if missing."""
    if not (settings.admin_email and settings.admin_password):
        return
    with store.open() as repos:
        existing = repos.users.get_by_email(settings.admin_email)
        if existing:
            if existing.role != Role.admin:
                logger.warning(f"{settings.admin_email} exists but is not an admin; leaving it unchanged")
            return
        repos.users.create(
            UserCreate(
                name=settings.admin_name,
                email=settings.admin_email,
                password=settings.admin_password,
            ),
            role=Role.admin,
        )
    logger.info(f"Created admin user: {settings.admin_email}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    settings = get_settings()
    # A store may already be attached, e.g. by tests
    owns_store = getattr(app.state, "store", None) is None
    if owns_store:
        logger.info("Initializing storage...")
        app.state.store = init_store(settings)
    bootstrap_admin(app.state.store, settings)
    yield
    logger.info("Shutting down application...")
    if owns_store:
        app.state.store.close()
        app.state.store = None


app = FastAPI(
    title="Todo API",
    description="A RESTful API for managing todo items with user authentication",
    version=system.API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
    return response


register_error_handlers(app)

app.include_router(system.router)
app.include_router(auth.router)
app.include_router(todos.router)
app.include_router(admin.router)
