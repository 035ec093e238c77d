import os
import secrets
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

from .logger import logger

# Load environment variables from .env file
load_dotenv()

STORAGE_BACKENDS = ("auto", "mongo", "sql", "memory")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


def _secret_key() -> str:
    key = os.getenv("SECRET_KEY")
    if not key:
        # Tokens issued with a generated key do not survive a restart
        key = secrets.token_hex(32)
        logger.warning("No SECRET_KEY found in environment. Using a generated key.")
        logger.warning("For production, set a SECRET_KEY in your .env file.")
    return key


@dataclass(frozen=True)
class Settings:
    """Application settings read from the environment."""

    database_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./todo.db"))
    sql_echo: bool = field(default_factory=lambda: _env_bool("SQL_ECHO"))

    mongodb_uri: Optional[str] = field(default_factory=lambda: os.getenv("MONGODB_URI") or None)
    mongodb_db: str = field(default_factory=lambda: os.getenv("MONGODB_DB", "todo_api"))
    mongodb_timeout_ms: int = field(default_factory=lambda: int(os.getenv("MONGODB_TIMEOUT_MS", 3000)))

    storage_backend: str = field(default_factory=lambda: os.getenv("STORAGE_BACKEND", "auto").lower())

    secret_key: str = field(default_factory=_secret_key)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = field(
        default_factory=lambda: int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 30))
    )

    cors_origins: List[str] = field(default_factory=lambda: _env_list("CORS_ORIGINS", "*"))

    admin_email: Optional[str] = field(default_factory=lambda: os.getenv("ADMIN_EMAIL") or None)
    admin_password: Optional[str] = field(default_factory=lambda: os.getenv("ADMIN_PASSWORD") or None)
    admin_name: str = field(default_factory=lambda: os.getenv("ADMIN_NAME", "Administrator"))

    def __post_init__(self):
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}, "
                f"got {self.storage_backend!r}"
            )


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()
