"""Signed session tokens carrying identity id, role and expiry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from cms_admin.models.identity import Identity, Role


@dataclass(frozen=True)
class Principal:
    """Identity projection embedded in a session."""

    id: int
    role: Role
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: datetime


class InvalidSession(Exception):
    """Raised when a token is malformed, tampered with or expired."""


class SessionManager:
    """Encode and decode stateless session tokens with PyJWT."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=24),
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._secret = secret
        self.algorithm = algorithm
        self.ttl = ttl
        self._now = now

    def issue(self, identity: Identity) -> IssuedSession:
        """Encode a session for ``identity``; the role is a snapshot."""

        issued_at = self._now()
        expires_at = issued_at + self.ttl
        payload = {
            "sub": str(identity.id),
            "role": Role.parse(identity.role).value,
            "email": identity.email,
            "name": identity.name,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        return IssuedSession(token=token, expires_at=expires_at)

    def decode(self, token: str) -> Principal:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "role", "exp"]},
                leeway=0,
            )
        except jwt.PyJWTError as exc:
            raise InvalidSession(str(exc)) from exc
        try:
            return Principal(
                id=int(payload["sub"]),
                role=Role.parse(payload["role"]),
                email=payload.get("email"),
                name=payload.get("name"),
            )
        except (TypeError, ValueError) as exc:
            raise InvalidSession("malformed session claims") from exc


__all__ = ["InvalidSession", "IssuedSession", "Principal", "SessionManager"]
