"""Alembic environment for the identity and audit tables."""

from __future__ import annotations

from logging.config import fileConfig
from typing import Any

from alembic import context

from cms_admin.config import get_config
from cms_admin.db.session import Base, get_engine
from cms_admin import models  # noqa: F401  registers the mapped tables


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

database_url = get_config().database_url
config.set_main_option("sqlalchemy.url", database_url)

target_metadata = Base.metadata


def _configure(**options: Any) -> None:
    # SQLite cannot ALTER constraints in place; batch mode rebuilds tables.
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=database_url.startswith("sqlite"),
        **options,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit SQL without a database connection."""

    _configure(
        url=database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )


def run_migrations_online() -> None:
    """Run migrations against the configured engine."""

    with get_engine().connect() as connection:
        _configure(connection=connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
