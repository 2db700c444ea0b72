"""Unit-of-work scopes shared by repositories, the audit logger and routes."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from sqlalchemy.exc import ResourceClosedError
from sqlalchemy.orm import Session, SessionTransaction

from cms_admin.db.session import get_session

logger = logging.getLogger(__name__)


@dataclass
class _Scope:
    name: str
    depth: int
    session: Session
    started: float = field(default_factory=time.perf_counter)

    @property
    def nested(self) -> bool:
        return self.depth > 1

    def log(self, event: str, level: int = logging.DEBUG) -> None:
        logger.log(
            level,
            "transaction.%s name=%s depth=%s nested=%s duration_ms=%.2f",
            event,
            self.name,
            self.depth,
            self.nested,
            (time.perf_counter() - self.started) * 1000,
        )


_current_scope: ContextVar[Optional[_Scope]] = ContextVar(
    "cms_admin_transaction_scope", default=None
)


class TransactionManager:
    """Open transactional scopes, nesting them on the active session.

    The outermost scope owns a fresh session, commits on success and always
    closes it. A scope opened inside another one reuses the parent session
    behind a savepoint, so an inner failure rolls back only its own work
    unless the caller lets the exception escape.
    """

    def __init__(
        self, session_factory: Callable[[], Session] = get_session
    ) -> None:
        self._session_factory = session_factory

    @contextmanager
    def transaction(self, *, name: str = "transaction") -> Iterator[Session]:
        parent = _current_scope.get()
        if parent is None:
            scope = _Scope(name, 1, self._session_factory())
            savepoint = None
        else:
            scope = _Scope(name, parent.depth + 1, parent.session)
            savepoint = parent.session.begin_nested()

        token = _current_scope.set(scope)
        scope.log("start")
        try:
            yield scope.session
            if savepoint is None:
                scope.session.commit()
            else:
                savepoint.commit()
            scope.log("commit")
        except Exception:
            scope.log("rollback", logging.WARNING)
            self._rollback(scope.session, savepoint)
            raise
        finally:
            _current_scope.reset(token)
            if savepoint is None:
                scope.session.close()

    @staticmethod
    def _rollback(
        session: Session, savepoint: Optional[SessionTransaction]
    ) -> None:
        if savepoint is None:
            session.rollback()
            return
        try:
            if savepoint.is_active:
                savepoint.rollback()
        except ResourceClosedError:  # pragma: no cover
            logger.debug("savepoint already closed")


transaction_manager = TransactionManager()


@contextmanager
def transactional_session(*, name: str = "transaction") -> Iterator[Session]:
    """Open a scope on the shared :data:`transaction_manager`."""

    with transaction_manager.transaction(name=name) as session:
        yield session


__all__ = [
    "TransactionManager",
    "transaction_manager",
    "transactional_session",
]
