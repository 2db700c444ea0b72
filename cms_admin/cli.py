"""Flask CLI commands for seeding and maintaining the admin database."""

from __future__ import annotations

import click
from flask import Flask, current_app
from flask.cli import with_appcontext

from cms_admin.auth.passwords import (
    MAX_PASSWORD_BYTES,
    PasswordHasher,
    password_too_long,
)
from cms_admin.db.session import Base, get_engine
from cms_admin.models.identity import Role
from cms_admin.models.repositories import IdentityRepository
from cms_admin.services.audit import AuditLogger
from cms_admin.services.transactions import transactional_session


@click.command("init-db")
@with_appcontext
def init_db() -> None:
    """Create all tables (development databases without Alembic)."""

    Base.metadata.create_all(bind=get_engine())
    click.echo("database initialised")


@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--name", default="Administrator", show_default=True)
@click.password_option()
@with_appcontext
def create_admin(email: str, name: str, password: str) -> None:
    """Seed an active ADMIN identity."""

    if len(password) < 8:
        raise click.BadParameter(
            "must be at least 8 characters", param_hint="--password"
        )
    if password_too_long(password):
        raise click.BadParameter(
            f"must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded",
            param_hint="--password",
        )
    hasher: PasswordHasher = current_app.extensions["password_hasher"]
    with transactional_session(name="cli.create_admin") as session:
        repo = IdentityRepository(session)
        if repo.get_by_email(email) is not None:
            raise click.ClickException(f"{email} already exists")
        identity = repo.create_identity(
            email=email,
            password_hash=hasher.hash(password),
            name=name,
            role=Role.ADMIN,
        )
    click.echo(f"created admin {identity.email} (id={identity.id})")


@click.command("purge-audit-log")
@click.option("--days", type=int, default=None)
@with_appcontext
def purge_audit_log(days: int | None) -> None:
    """Delete audit records older than the retention period."""

    config = current_app.config["APP_CONFIG"]
    audit: AuditLogger = current_app.extensions["audit_logger"]
    removed = audit.purge_older_than(days or config.audit_retention_days)
    click.echo(f"removed {removed} audit records")


def register_commands(app: Flask) -> None:
    app.cli.add_command(init_db)
    app.cli.add_command(create_admin)
    app.cli.add_command(purge_audit_log)
