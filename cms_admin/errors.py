"""Error taxonomy shared by the authentication, authorization and audit layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class AdminError(Exception):
    """Base error carrying the HTTP status it translates to."""

    message: str
    status_code: int = 500
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class RateLimitExceeded(AdminError):
    """Too many attempts for a scope inside the current window."""

    message: str = "too many attempts"
    status_code: int = 429
    retry_after: int = 0

    @classmethod
    def for_delay(cls, retry_after: int) -> "RateLimitExceeded":
        return cls(
            message=(
                "Too many login attempts. Please try again in "
                f"{retry_after} seconds."
            ),
            retry_after=retry_after,
            details={"retry_after": retry_after},
        )


@dataclass(eq=False)
class InvalidCredentials(AdminError):
    message: str = "invalid credentials"
    status_code: int = 401


@dataclass(eq=False)
class Unauthorized(AdminError):
    message: str = "authentication required"
    status_code: int = 401


@dataclass(eq=False)
class Forbidden(AdminError):
    message: str = "access denied"
    status_code: int = 403


@dataclass(eq=False)
class ValidationFailed(AdminError):
    message: str = "validation failed"
    status_code: int = 400


@dataclass(eq=False)
class AuditWriteFailed(AdminError):
    message: str = "failed to record audit entry"
    status_code: int = 500


__all__ = [
    "AdminError",
    "AuditWriteFailed",
    "Forbidden",
    "InvalidCredentials",
    "RateLimitExceeded",
    "Unauthorized",
    "ValidationFailed",
]
