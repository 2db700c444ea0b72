"""Staff account administration endpoints."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from cms_admin.auth.guard import authorize
from cms_admin.auth.passwords import PasswordHasher
from cms_admin.errors import ValidationFailed
from cms_admin.models.audit import AuditAction
from cms_admin.models.identity import Role
from cms_admin.models.repositories import IdentityRepository
from cms_admin.routes.helpers import error_response, load_or_fail
from cms_admin.schemas.identity import (
    IdentityCreateSchema,
    IdentitySchema,
    IdentityUpdateSchema,
)
from cms_admin.services.audit import AuditLogger
from cms_admin.services.transactions import transactional_session

users_bp = Blueprint("users", __name__, url_prefix="/admin/users")

identity_schema = IdentitySchema()
identities_schema = IdentitySchema(many=True)
create_schema = IdentityCreateSchema()
update_schema = IdentityUpdateSchema()

ADMIN_ONLY = {Role.ADMIN}
ENTITY_TYPE = "Identity"


def _audit() -> AuditLogger:
    return current_app.extensions["audit_logger"]


def _hasher() -> PasswordHasher:
    return current_app.extensions["password_hasher"]


@users_bp.get("")
def list_identities():
    """Return every staff account, newest first."""

    authorize(ADMIN_ONLY)
    with transactional_session(name="users.list") as session:
        identities = IdentityRepository(session).list_identities()
        return jsonify({"users": identities_schema.dump(identities)})


@users_bp.get("/<int:identity_id>")
def get_identity(identity_id: int):
    authorize(ADMIN_ONLY)
    with transactional_session(name="users.get") as session:
        identity = IdentityRepository(session).get(identity_id)
        if identity is None:
            return error_response(404, "user not found")
        return jsonify({"user": identity_schema.dump(identity)})


@users_bp.post("")
def create_identity():
    """Create a staff account and audit the creation."""

    principal = authorize(ADMIN_ONLY)
    data = load_or_fail(create_schema, request.get_json(silent=True))

    with transactional_session(name="users.create") as session:
        repo = IdentityRepository(session)
        if repo.get_by_email(data["email"]) is not None:
            return error_response(409, "user with this email already exists")
        identity = repo.create_identity(
            email=data["email"],
            password_hash=_hasher().hash(data["password"]),
            name=data["name"],
            role=data["role"],
            is_active=data["is_active"],
        )
        _audit().log_request_action(
            principal.id,
            AuditAction.CREATE,
            ENTITY_TYPE,
            identity.id,
            identity.snapshot(),
            session=session,
        )
        body = identity_schema.dump(identity)

    return jsonify({"user": body}), 201


@users_bp.put("/<int:identity_id>")
def update_identity(identity_id: int):
    """Update a staff account, recording before and after values."""

    principal = authorize(ADMIN_ONLY)
    changes = load_or_fail(update_schema, request.get_json(silent=True))

    with transactional_session(name="users.update") as session:
        repo = IdentityRepository(session)
        identity = repo.get(identity_id)
        if identity is None:
            return error_response(404, "user not found")
        if identity.id == principal.id:
            if changes.get("is_active") is False:
                raise ValidationFailed(
                    "You cannot deactivate your own account"
                )
            if "role" in changes and changes["role"] != identity.role:
                raise ValidationFailed("You cannot change your own role")
        if "email" in changes:
            existing = repo.get_by_email(changes["email"])
            if existing is not None and existing.id != identity.id:
                return error_response(
                    409, "user with this email already exists"
                )

        before = identity.snapshot()
        password = changes.pop("password", None)
        if password:
            changes["password_hash"] = _hasher().hash(password)
        repo.update_identity(identity, changes)
        detail = {"before": before, "after": identity.snapshot()}
        if password:
            detail["password_changed"] = True
        _audit().log_request_action(
            principal.id,
            AuditAction.UPDATE,
            ENTITY_TYPE,
            identity.id,
            detail,
            session=session,
        )
        body = identity_schema.dump(identity)

    return jsonify({"user": body})


@users_bp.delete("/<int:identity_id>")
def deactivate_identity(identity_id: int):
    """Deactivate a staff account; identities are never hard-deleted."""

    principal = authorize(ADMIN_ONLY)
    if identity_id == principal.id:
        raise ValidationFailed("You cannot delete your own account")

    with transactional_session(name="users.deactivate") as session:
        repo = IdentityRepository(session)
        identity = repo.get(identity_id)
        if identity is None:
            return error_response(404, "user not found")
        before = identity.snapshot()
        repo.deactivate(identity)
        _audit().log_request_action(
            principal.id,
            AuditAction.DELETE,
            ENTITY_TYPE,
            identity.id,
            {"before": before, "after": identity.snapshot()},
            session=session,
        )
        body = identity_schema.dump(identity)

    return jsonify({"user": body})
