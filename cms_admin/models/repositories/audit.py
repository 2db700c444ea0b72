"""Persistence helpers for audit records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import delete, func, select

from cms_admin.models.audit import AuditAction, AuditRecord

from .base import SQLAlchemyRepository, repository_method


@dataclass(frozen=True)
class AuditFilters:
    """Conjunctive filters applied to audit queries."""

    actor_id: Optional[int] = None
    action: Optional[AuditAction] = None
    entity_type: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = 50
    offset: int = 0


class AuditRecordRepository(SQLAlchemyRepository):
    """Append and query immutable audit records."""

    @repository_method
    def record_event(
        self,
        *,
        actor_id: int,
        action: AuditAction,
        entity_type: str,
        entity_id: Optional[str] = None,
        detail: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> AuditRecord:
        entry = AuditRecord(
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            detail=detail or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        if created_at is not None:
            entry.created_at = created_at
        self.session.add(entry)
        self._flush()
        return entry

    @repository_method
    def get(self, record_id: int) -> Optional[AuditRecord]:
        return self.session.get(AuditRecord, record_id)

    @repository_method
    def find_many(
        self, filters: AuditFilters
    ) -> tuple[Sequence[AuditRecord], int]:
        conditions = []
        if filters.actor_id is not None:
            conditions.append(AuditRecord.actor_id == filters.actor_id)
        if filters.action is not None:
            conditions.append(AuditRecord.action == filters.action)
        if filters.entity_type:
            conditions.append(AuditRecord.entity_type == filters.entity_type)
        if filters.start_date is not None:
            conditions.append(AuditRecord.created_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(AuditRecord.created_at <= filters.end_date)

        stmt = (
            select(AuditRecord)
            .where(*conditions)
            .order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
            .limit(filters.limit)
            .offset(filters.offset)
        )
        count_stmt = (
            select(func.count()).select_from(AuditRecord).where(*conditions)
        )
        items = self.session.execute(stmt).unique().scalars().all()
        total = self.session.execute(count_stmt).scalar_one()
        return items, total

    @repository_method
    def delete_older_than(self, cutoff: datetime) -> int:
        stmt = delete(AuditRecord).where(AuditRecord.created_at < cutoff)
        result = self.session.execute(stmt)
        return result.rowcount or 0


__all__ = ["AuditFilters", "AuditRecordRepository"]
