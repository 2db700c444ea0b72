# -*- coding: utf-8 -*-
"""Login, logout and session inspection routes."""

from flask import Blueprint, current_app, jsonify, request

from cms_admin.auth.authenticator import Authenticator
from cms_admin.auth.guard import ANY_ROLE, authorize
from cms_admin.models.audit import AuditAction
from cms_admin.routes.helpers import load_or_fail
from cms_admin.schemas.identity import (
    IdentitySchema,
    LoginSchema,
    PrincipalSchema,
)
from cms_admin.services.audit import AuditLogger

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")
login_schema = LoginSchema()
identity_schema = IdentitySchema()
principal_schema = PrincipalSchema()


@auth_bp.post("/login")
def login():
    """Exchange email and password for a session.

    Returns:
        Response: The session token and the identity, with the session
        cookie set.
    """
    data = load_or_fail(login_schema, request.get_json(silent=True))
    authenticator: Authenticator = current_app.extensions["authenticator"]
    result = authenticator.authenticate(data["email"], data["password"])
    result.raise_for_error()

    identity = result.identity
    audit: AuditLogger = current_app.extensions["audit_logger"]
    audit.record_quietly(
        identity.id, AuditAction.LOGIN, "Identity", identity.id
    )

    config = current_app.config["APP_CONFIG"]
    response = jsonify(
        {
            "token": result.token,
            "expires_at": result.expires_at.isoformat(),
            "user": identity_schema.dump(identity),
        }
    )
    response.set_cookie(
        config.session_cookie_name,
        result.token,
        expires=result.expires_at,
        httponly=True,
        secure=config.session_cookie_secure,
        samesite="Lax",
    )
    return response


@auth_bp.post("/logout")
def logout():
    """Discard the session cookie and record the logout."""

    principal = authorize(ANY_ROLE)
    audit: AuditLogger = current_app.extensions["audit_logger"]
    audit.record_quietly(
        principal.id, AuditAction.LOGOUT, "Identity", principal.id
    )
    config = current_app.config["APP_CONFIG"]
    response = jsonify({"logged_out": True})
    response.delete_cookie(config.session_cookie_name)
    return response


@auth_bp.get("/session")
def current_session():
    """Return the principal embedded in the caller's session."""

    principal = authorize(ANY_ROLE)
    return jsonify({"user": principal_schema.dump(principal)})
