"""Role-based authorization over session tokens."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from flask import current_app, request

from cms_admin.auth.sessions import InvalidSession, Principal, SessionManager
from cms_admin.errors import AdminError, Forbidden, Unauthorized
from cms_admin.models.identity import Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessDecision:
    principal: Optional[Principal] = None
    error: Optional[AdminError] = None

    @property
    def allowed(self) -> bool:
        return self.error is None


class AuthorizationGuard:
    """Check that a session exists and its role is in an explicit set."""

    def __init__(self, sessions: SessionManager) -> None:
        self.sessions = sessions

    def evaluate(
        self, token: Optional[str], allowed_roles: Iterable[Role]
    ) -> AccessDecision:
        allowed = frozenset(Role.parse(role) for role in allowed_roles)
        if not allowed:
            raise ValueError("allowed_roles must not be empty")
        if not token:
            return AccessDecision(error=Unauthorized())
        try:
            principal = self.sessions.decode(token)
        except InvalidSession as exc:
            logger.info("guard.invalid_session reason=%s", exc)
            return AccessDecision(error=Unauthorized("invalid session"))
        if principal.role not in allowed:
            required = " or ".join(sorted(role.value for role in allowed))
            return AccessDecision(
                principal=principal,
                error=Forbidden(f"Access denied. Required role: {required}"),
            )
        return AccessDecision(principal=principal)

    def require_role(
        self, token: Optional[str], allowed_roles: Iterable[Role]
    ) -> Principal:
        decision = self.evaluate(token, allowed_roles)
        if decision.error is not None:
            raise decision.error
        if decision.principal is None:  # pragma: no cover
            raise Unauthorized()
        return decision.principal


def request_token() -> Optional[str]:
    """Return the session token of the current request, if any.

    The ``Authorization: Bearer`` header wins over the session cookie.
    """

    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        token = auth.split(" ", 1)[1].strip()
        return token or None
    cookie_name = current_app.config["APP_CONFIG"].session_cookie_name
    return request.cookies.get(cookie_name) or None


def authorize(allowed_roles: Iterable[Role]) -> Principal:
    """Guard the current request, returning the caller's principal."""

    guard: AuthorizationGuard = current_app.extensions["guard"]
    return guard.require_role(request_token(), allowed_roles)


ANY_ROLE = frozenset(Role)

__all__ = [
    "ANY_ROLE",
    "AccessDecision",
    "AuthorizationGuard",
    "authorize",
    "request_token",
]
