"""Engine and session factory for the admin database."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import (
    DeclarativeBase,
    Session,
    close_all_sessions,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

from cms_admin.config import Config, get_config

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by identities and audit records."""


_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _engine_options(config: Config, url: URL) -> tuple[str | URL, dict]:
    """Return the connect target and ``create_engine`` keyword arguments."""

    options: dict[str, Any] = {
        "echo": config.sqlalchemy_echo,
        "pool_pre_ping": True,
    }
    backend = url.get_backend_name()
    if backend == "sqlite":
        # The in-memory database must be shared by every session.
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
        return config.database_url, options

    options.update(
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
    )
    if backend == "postgresql" and config.database_ssl_mode:
        connect_args: dict[str, Any] = dict(url.query)
        connect_args.setdefault("sslmode", config.database_ssl_mode)
        options["connect_args"] = connect_args
        return url.set(query={}), options
    return config.database_url, options


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""

    global _engine
    if _engine is not None:
        return _engine

    config = get_config()
    url = make_url(config.database_url)
    target, options = _engine_options(config, url)
    try:
        _engine = create_engine(target, **options)
    except SQLAlchemyError:
        logger.exception(
            "database engine could not be created for %s",
            url.render_as_string(hide_password=True),
        )
        raise
    logger.debug("database.engine backend=%s", url.get_backend_name())
    return _engine


def get_session() -> Session:
    """Create a new session; callers own its lifecycle."""

    global _SessionFactory
    if _SessionFactory is None:
        # Objects stay readable after the unit of work commits.
        _SessionFactory = sessionmaker(
            bind=get_engine(), autoflush=False, expire_on_commit=False
        )
    return _SessionFactory()


def reset_engine() -> None:
    """Dispose of the engine and forget the cached configuration."""

    global _engine, _SessionFactory
    if _SessionFactory is not None:
        close_all_sessions()
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
    get_config.cache_clear()
