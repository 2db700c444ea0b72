"""SQLAlchemy models for staff identities."""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Enum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from cms_admin.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    """Closed set of authorization levels."""

    ADMIN = "ADMIN"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"

    @property
    def is_admin(self) -> bool:
        return self is Role.ADMIN

    @property
    def can_edit(self) -> bool:
        return self in (Role.ADMIN, Role.EDITOR)

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        """Return the role named by ``value`` (case-insensitive)."""

        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"unknown role: {value!r}") from None


class Identity(Base):
    """A registered staff account."""

    __tablename__ = "identities"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="identity_role", native_enum=False, length=16),
        nullable=False,
        default=Role.VIEWER,
        server_default=Role.VIEWER.value,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="1",
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )

    def snapshot(self) -> dict[str, object]:
        """Audit-friendly view of the mutable fields."""

        return {
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<Identity id={self.id} email={self.email!r} role={self.role}>"


__all__ = ["Identity", "Role"]
