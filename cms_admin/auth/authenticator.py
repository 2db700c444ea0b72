"""Email/password authentication gated by the login rate limiter."""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from prometheus_client import Counter
from sqlalchemy.orm import Session

from cms_admin.auth.passwords import PasswordHasher
from cms_admin.auth.rate_limit import RateLimiter, RedisRateLimiter
from cms_admin.auth.sessions import SessionManager
from cms_admin.errors import AdminError, InvalidCredentials, RateLimitExceeded
from cms_admin.models.identity import Identity
from cms_admin.models.repositories import IdentityRepository, normalize_email
from cms_admin.services.transactions import transactional_session

logger = logging.getLogger(__name__)

_LOGIN_ATTEMPTS = Counter(
    "cms_admin_login_attempts_total",
    "Login attempts grouped by outcome.",
    labelnames=("outcome",),
)

AUTH_SCOPE_PREFIX = "auth:"


def auth_scope(email: str) -> str:
    return AUTH_SCOPE_PREFIX + normalize_email(email)


@dataclass(frozen=True)
class AuthenticationResult:
    """Outcome of a login attempt.

    Exactly one of ``identity`` and ``error`` is set.
    """

    identity: Optional[Identity] = None
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    error: Optional[AdminError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.identity is not None

    @property
    def rate_limited(self) -> bool:
        return isinstance(self.error, RateLimitExceeded)

    def raise_for_error(self) -> "AuthenticationResult":
        if self.error is not None:
            raise self.error
        return self


class Authenticator:
    """Verify credentials and issue sessions."""

    def __init__(
        self,
        *,
        rate_limiter: RateLimiter | RedisRateLimiter,
        sessions: SessionManager,
        hasher: PasswordHasher,
        transaction: Callable[
            ..., AbstractContextManager[Session]
        ] = transactional_session,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.sessions = sessions
        self.hasher = hasher
        self._transaction = transaction
        self._decoy_hash: Optional[str] = None

    def authenticate(self, email: str, password: str) -> AuthenticationResult:
        if not email or not email.strip() or not password:
            return self._failure(InvalidCredentials(), "missing_fields")

        normalized = normalize_email(email)
        try:
            self.rate_limiter.check_and_increment(auth_scope(normalized))
        except RateLimitExceeded as exc:
            logger.warning(
                "auth.rate_limited email=%s retry_after=%s",
                normalized,
                exc.retry_after,
            )
            return self._failure(exc, "rate_limited")

        with self._transaction(name="auth.login") as session:
            repo = IdentityRepository(session)
            identity = repo.get_by_email(normalized)
            if identity is None or not identity.is_active:
                # Keep the response time close to a real hash comparison.
                self.hasher.verify(password, self._decoy())
                return self._failure(InvalidCredentials(), "invalid")
            if not self.hasher.verify(password, identity.password_hash):
                return self._failure(InvalidCredentials(), "invalid")
            repo.touch_login(identity)
            issued = self.sessions.issue(identity)

        _LOGIN_ATTEMPTS.labels(outcome="success").inc()
        logger.info("auth.login identity_id=%s", identity.id)
        return AuthenticationResult(
            identity=identity,
            token=issued.token,
            expires_at=issued.expires_at,
        )

    def _failure(self, error: AdminError, outcome: str) -> AuthenticationResult:
        _LOGIN_ATTEMPTS.labels(outcome=outcome).inc()
        return AuthenticationResult(error=error)

    def _decoy(self) -> str:
        if self._decoy_hash is None:
            self._decoy_hash = self.hasher.hash("decoy-password")
        return self._decoy_hash


__all__ = ["AuthenticationResult", "Authenticator", "auth_scope"]
