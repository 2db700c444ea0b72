"""Environment-driven configuration for the admin service."""

from __future__ import annotations

import os

from dataclasses import dataclass, field
from functools import cached_property, lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from redis import Redis


load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Config:
    """Settings for the database, sessions, rate limiting and audit trail."""

    database_url: str
    redis_url: Optional[str] = None
    pool_size: int = 5
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800
    database_ssl_mode: Optional[str] = None
    sqlalchemy_echo: bool = False
    app_port: int = 5001
    flask_secret: str = "dev"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    session_secret: str = "change_me"
    session_algorithm: str = "HS256"
    session_ttl_minutes: int = 24 * 60
    session_cookie_name: str = "cms_session"
    session_cookie_secure: bool = False
    bcrypt_rounds: int = 12

    rate_limit_backend: str = "memory"
    auth_rate_limit_max_attempts: int = 5
    auth_rate_limit_window_seconds: int = 15 * 60
    rate_limit_sweep_seconds: int = 300

    audit_export_max_rows: int = 10000
    audit_retention_days: int = 365

    @cached_property
    def redis(self) -> Optional[Redis]:
        """Redis client for the shared rate limiter, if ``REDIS_URL`` is set."""

        if not self.redis_url:
            return None
        return Redis.from_url(self.redis_url, decode_responses=True)

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            database_url=os.getenv(
                "DATABASE_URL", "sqlite+pysqlite:///:memory:"
            ),
            redis_url=os.getenv("REDIS_URL") or None,
            pool_size=_env_int("DB_POOL_SIZE", 5),
            max_overflow=_env_int("DB_MAX_OVERFLOW", 5),
            pool_timeout=_env_int("DB_POOL_TIMEOUT", 30),
            pool_recycle=_env_int("DB_POOL_RECYCLE", 1800),
            database_ssl_mode=os.getenv("DATABASE_SSL_MODE") or None,
            sqlalchemy_echo=_env_bool("SQLALCHEMY_ECHO"),
            app_port=_env_int("APP_PORT", 5001),
            flask_secret=os.getenv("FLASK_SECRET", "dev"),
            cors_origins=_env_list("CORS_ORIGINS", ["*"]),
            session_secret=os.getenv("SESSION_SECRET", "change_me"),
            session_algorithm=os.getenv("SESSION_ALGO", "HS256"),
            session_ttl_minutes=_env_int("SESSION_TTL_MINUTES", 24 * 60),
            session_cookie_name=os.getenv(
                "SESSION_COOKIE_NAME", "cms_session"
            ),
            session_cookie_secure=_env_bool("SESSION_COOKIE_SECURE"),
            bcrypt_rounds=_env_int("BCRYPT_ROUNDS", 12),
            rate_limit_backend=os.getenv("RATE_LIMIT_BACKEND", "memory")
            .strip()
            .lower(),
            auth_rate_limit_max_attempts=_env_int(
                "AUTH_RATE_LIMIT_MAX_ATTEMPTS", 5
            ),
            auth_rate_limit_window_seconds=_env_int(
                "AUTH_RATE_LIMIT_WINDOW_SECONDS", 15 * 60
            ),
            rate_limit_sweep_seconds=_env_int("RATE_LIMIT_SWEEP_SECONDS", 300),
            audit_export_max_rows=_env_int("AUDIT_EXPORT_MAX_ROWS", 10000),
            audit_retention_days=_env_int("AUDIT_RETENTION_DAYS", 365),
        )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Return the cached configuration built from the environment."""

    return Config.from_env()


def reset_config(
    overrides: Optional[dict[str, Optional[str]]] = None,
) -> Config:
    """Apply environment ``overrides`` (``None`` unsets) and rebuild."""

    for key, value in (overrides or {}).items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value
    get_config.cache_clear()
    return get_config()
