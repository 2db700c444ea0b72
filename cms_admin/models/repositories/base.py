"""Shared plumbing for repositories: session access and error translation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cms_admin.errors import AdminError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(eq=False)
class RepositoryError(AdminError):
    """A persistence failure translated into the admin error taxonomy.

    Integrity violations map to 409, everything else to 500.
    """

    message: str = "database operation failed"
    status_code: int = 500


class SQLAlchemyRepository:
    """Repository bound to one caller-owned SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    @property
    def name(self) -> str:
        return type(self).__name__

    def _handle_error(
        self, exc: SQLAlchemyError, operation: str = "flush"
    ) -> None:
        """Roll the session back and raise the matching ``RepositoryError``."""

        try:
            self.session.rollback()
        except SQLAlchemyError:  # pragma: no cover - log only
            logger.exception("%s: rollback after error failed", self.name)
        details = {"repository": self.name, "operation": operation}
        if isinstance(exc, IntegrityError):
            logger.info(
                "repository.conflict repository=%s operation=%s",
                self.name,
                operation,
            )
            raise RepositoryError(
                "database integrity error", status_code=409, details=details
            ) from exc
        logger.error(
            "repository.failed repository=%s operation=%s error=%s",
            self.name,
            operation,
            exc.__class__.__name__,
        )
        raise RepositoryError(details=details) from exc

    def _flush(self) -> None:
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            self._handle_error(exc)


def repository_method(func: Callable[..., T]) -> Callable[..., T]:
    """Translate SQLAlchemy failures raised by ``func`` into ``RepositoryError``."""

    @wraps(func)
    def wrapper(self: SQLAlchemyRepository, *args: Any, **kwargs: Any) -> T:
        try:
            return func(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self._handle_error(exc, func.__name__)
            raise  # pragma: no cover - _handle_error always raises

    return wrapper


__all__ = ["SQLAlchemyRepository", "RepositoryError", "repository_method"]
