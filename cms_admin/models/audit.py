"""Database models for audit logging."""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cms_admin.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"


class AuditRecord(Base):
    """Append-only record of a sensitive action performed by an identity."""

    __tablename__ = "audit_records"
    __table_args__ = (
        Index("ix_audit_records_created_at", "created_at"),
        Index("ix_audit_records_actor_created", "actor_id", "created_at"),
        Index("ix_audit_records_action_created", "action", "created_at"),
        Index(
            "ix_audit_records_entity_type_created",
            "entity_type",
            "created_at",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    actor_id: Mapped[int] = mapped_column(
        ForeignKey("identities.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, name="audit_action", native_enum=False, length=16),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(
        String(120), nullable=False, index=True
    )
    entity_id: Mapped[str | None] = mapped_column(String(120))
    detail: Mapped[dict[str, object] | None] = mapped_column(JSON)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    actor = relationship("Identity", lazy="joined")


__all__ = ["AuditAction", "AuditRecord"]
