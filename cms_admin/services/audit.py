"""Recording, querying and exporting the audit trail."""

from __future__ import annotations

import csv
import io
import json
import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional, Sequence

from flask import has_request_context, request
from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cms_admin.errors import AuditWriteFailed
from cms_admin.models.audit import AuditAction, AuditRecord
from cms_admin.models.identity import Identity
from cms_admin.models.repositories import (
    AuditFilters,
    AuditRecordRepository,
    RepositoryError,
)
from cms_admin.services.transactions import transactional_session

logger = logging.getLogger("cms_admin.audit")

_AUDIT_WRITE_FAILURES = Counter(
    "cms_admin_audit_write_failures_total",
    "Audit records that could not be persisted.",
)

EXPORT_COLUMNS = (
    "ID",
    "Actor ID",
    "Actor Email",
    "Actor Name",
    "Action",
    "Entity Type",
    "Entity ID",
    "IP Address",
    "User Agent",
    "Created At",
    "Details",
)


@dataclass(frozen=True)
class AuditPage:
    items: Sequence[AuditRecord]
    total: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


def request_origin() -> tuple[Optional[str], Optional[str]]:
    """Return ``(ip_address, user_agent)`` for the active request."""

    if not has_request_context():
        return None, None
    forwarded = request.headers.get("X-Forwarded-For")
    ip_address = None
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    if not ip_address:
        ip_address = request.headers.get("X-Real-IP") or request.remote_addr
    user_agent = request.headers.get("User-Agent")
    return ip_address or None, user_agent or None


class AuditLogger:
    """Append-only audit trail over :class:`AuditRecordRepository`."""

    def __init__(
        self,
        *,
        export_max_rows: int = 10000,
        transaction: Callable[
            ..., AbstractContextManager[Session]
        ] = transactional_session,
    ) -> None:
        self.export_max_rows = export_max_rows
        self._transaction = transaction

    def log_action(
        self,
        actor_id: int,
        action: AuditAction | str,
        entity_type: str,
        entity_id: Optional[Any] = None,
        detail: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        *,
        session: Optional[Session] = None,
        created_at: Optional[datetime] = None,
    ) -> AuditRecord:
        """Persist one audit record, raising ``AuditWriteFailed`` on error.

        When ``session`` is given the record joins the caller's transaction,
        otherwise it is committed on its own.
        """

        try:
            action = AuditAction(action)
        except ValueError as exc:
            raise AuditWriteFailed(
                f"unknown audit action {action!r}"
            ) from exc
        payload = {
            "actor_id": actor_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": str(entity_id) if entity_id is not None else None,
            "detail": _json_safe(detail or {}),
            "ip_address": ip_address,
            "user_agent": user_agent[:255] if user_agent else None,
            "created_at": created_at,
        }
        if session is not None:
            return self._write(session, payload)
        try:
            with self._transaction(name=f"audit.{action.value}") as own:
                return self._write(own, payload)
        except AuditWriteFailed:
            raise
        except (RepositoryError, SQLAlchemyError) as exc:
            # Commit failures surface here, outside the repository.
            raise AuditWriteFailed(details={"reason": str(exc)}) from exc

    def log_request_action(
        self,
        actor_id: int,
        action: AuditAction | str,
        entity_type: str,
        entity_id: Optional[Any] = None,
        detail: Optional[dict[str, Any]] = None,
        *,
        session: Optional[Session] = None,
    ) -> AuditRecord:
        """Like :meth:`log_action`, taking the origin from the request."""

        ip_address, user_agent = request_origin()
        return self.log_action(
            actor_id,
            action,
            entity_type,
            entity_id,
            detail,
            ip_address,
            user_agent,
            session=session,
        )

    def record_quietly(
        self,
        actor_id: int,
        action: AuditAction | str,
        entity_type: str,
        entity_id: Optional[Any] = None,
        detail: Optional[dict[str, Any]] = None,
    ) -> Optional[AuditRecord]:
        """Fire-and-forget variant of :meth:`log_request_action`.

        Failures are logged at ERROR and counted, never raised.
        """

        try:
            return self.log_request_action(
                actor_id, action, entity_type, entity_id, detail
            )
        except AuditWriteFailed as exc:
            _AUDIT_WRITE_FAILURES.inc()
            logger.error(
                "audit.write_failed actor_id=%s action=%s entity_type=%s "
                "reason=%s",
                actor_id,
                action,
                entity_type,
                exc.details.get("reason", exc.message),
                exc_info=exc,
            )
            return None

    def query(self, filters: AuditFilters) -> AuditPage:
        with self._transaction(name="audit.query") as session:
            items, total = AuditRecordRepository(session).find_many(filters)
        return AuditPage(items=items, total=total, offset=filters.offset)

    def get(self, record_id: int) -> Optional[AuditRecord]:
        with self._transaction(name="audit.get") as session:
            return AuditRecordRepository(session).get(record_id)

    def export_audit_log(self, filters: AuditFilters) -> str:
        """Render matching records as CSV, newest first."""

        limit = min(filters.limit, self.export_max_rows)
        page = self.query(replace(filters, limit=limit))
        return render_csv(page.items)

    def purge_older_than(
        self, days: int, *, now: Optional[datetime] = None
    ) -> int:
        """Delete records older than ``days``; returns the count removed."""

        if days < 1:
            raise ValueError("days must be positive")
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        with self._transaction(name="audit.purge") as session:
            removed = AuditRecordRepository(session).delete_older_than(cutoff)
        logger.warning(
            "audit.purged count=%s cutoff=%s", removed, cutoff.isoformat()
        )
        return removed

    def _write(
        self, session: Session, payload: dict[str, Any]
    ) -> AuditRecord:
        actor_id = payload["actor_id"]
        try:
            actor = session.get(Identity, actor_id) if actor_id else None
        except SQLAlchemyError as exc:
            raise AuditWriteFailed(
                details={"reason": str(exc), "actor_id": actor_id}
            ) from exc
        if actor is None:
            raise AuditWriteFailed(
                "audit actor does not exist",
                details={"actor_id": actor_id},
            )
        try:
            return AuditRecordRepository(session).record_event(**payload)
        except RepositoryError as exc:
            raise AuditWriteFailed(details={"reason": str(exc)}) from exc


def render_csv(records: Iterable[AuditRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for record in records:
        actor = record.actor
        writer.writerow(
            (
                record.id,
                record.actor_id,
                actor.email if actor else "",
                actor.name if actor else "",
                record.action.value,
                record.entity_type,
                record.entity_id or "",
                record.ip_address or "",
                record.user_agent or "",
                _isoformat(record.created_at),
                json.dumps(record.detail or {}, separators=(",", ":")),
            )
        )
    return buffer.getvalue()


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _json_safe(detail: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(detail, default=str))


__all__ = [
    "AuditLogger",
    "AuditPage",
    "EXPORT_COLUMNS",
    "render_csv",
    "request_origin",
]
