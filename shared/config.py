import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

DEFAULT_SESSION_TTL_SECONDS = 60 * 60
DEFAULT_MAX_FILE_SIZE = 5 * 1024 * 1024

_TRUTHY = {"1", "true", "yes", "y", "on"}


def get_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return an environment setting with an optional default."""
    return os.getenv(name, default)


def get_required_setting(name: str) -> str:
    """Return a required environment setting or raise a ValueError."""
    value = os.getenv(name)
    if not value or not value.strip():
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def get_database_url() -> str:
    """
    Return the database URL for SQLAlchemy.
    Accepts the Postgres connection string setting used by older deployments.
    """
    value = os.getenv("DATABASE_URL") or os.getenv("POSTGRES_CONNECTION_STRING")
    if not value or not value.strip():
        raise ValueError("Missing required environment variable: DATABASE_URL")
    return value.strip()


def get_session_secret() -> str:
    for key in ("AUTH_SESSION_SECRET", "JWT_SECRET"):
        value = str(get_setting(key) or "").strip()
        if value:
            return value
    raise ValueError("Missing required environment variable: AUTH_SESSION_SECRET")


def _session_ttl_seconds() -> int:
    raw = str(get_setting("AUTH_SESSION_TTL_SECONDS") or "").strip()
    try:
        parsed = int(raw) if raw else DEFAULT_SESSION_TTL_SECONDS
    except ValueError:
        parsed = DEFAULT_SESSION_TTL_SECONDS
    return max(5 * 60, min(7 * 24 * 60 * 60, parsed))


def _max_file_size() -> int:
    raw = str(get_setting("MAX_FILE_SIZE") or "").strip()
    if not raw:
        return DEFAULT_MAX_FILE_SIZE
    if not raw.isdigit() or int(raw) <= 0:
        raise ValueError(f"Invalid MAX_FILE_SIZE, must be a positive integer: {raw}")
    return int(raw)


def _cors_origins() -> Tuple[str, ...]:
    raw = (
        get_setting("CORS_ORIGIN")
        or get_setting("ALLOWED_ORIGINS")
        or get_setting("CORS_ALLOWED_ORIGINS")
        or "*"
    )
    origins = []
    for origin in raw.split(","):
        cleaned = origin.strip()
        if not cleaned:
            continue
        if cleaned == "*":
            return ("*",)
        origins.append(cleaned)
    return tuple(origins) or ("*",)


@dataclass(frozen=True)
class AppSettings:
    database_url: str
    session_secret: str
    session_ttl_seconds: int
    cors_origins: Tuple[str, ...]
    cors_allow_credentials: bool
    max_file_size: int


def load_settings() -> AppSettings:
    """Read and validate every setting the handlers depend on."""
    return AppSettings(
        database_url=get_database_url(),
        session_secret=get_session_secret(),
        session_ttl_seconds=_session_ttl_seconds(),
        cors_origins=_cors_origins(),
        cors_allow_credentials=str(get_setting("CORS_ALLOW_CREDENTIALS") or "").strip().lower() in _TRUTHY,
        max_file_size=_max_file_size(),
    )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()
