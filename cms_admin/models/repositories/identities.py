"""Repository handling persistence for ``Identity`` records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import select

from cms_admin.models.identity import Identity, Role

from .base import SQLAlchemyRepository, repository_method


UPDATABLE_FIELDS = ("email", "name", "role", "is_active", "password_hash")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class IdentityRepository(SQLAlchemyRepository):
    """Lookup and lifecycle operations for staff identities."""

    @repository_method
    def get(self, identity_id: int) -> Optional[Identity]:
        return self.session.get(Identity, identity_id)

    @repository_method
    def get_by_email(self, email: str) -> Optional[Identity]:
        stmt = select(Identity).where(Identity.email == normalize_email(email))
        return self.session.execute(stmt).scalar_one_or_none()

    @repository_method
    def list_identities(self) -> Sequence[Identity]:
        stmt = select(Identity).order_by(
            Identity.created_at.desc(), Identity.id.desc()
        )
        return self.session.execute(stmt).scalars().all()

    @repository_method
    def create_identity(
        self,
        *,
        email: str,
        password_hash: str,
        name: str,
        role: Role = Role.VIEWER,
        is_active: bool = True,
    ) -> Identity:
        identity = Identity(
            email=normalize_email(email),
            password_hash=password_hash,
            name=name.strip(),
            role=Role.parse(role),
            is_active=is_active,
        )
        self.session.add(identity)
        self._flush()
        return identity

    @repository_method
    def update_identity(
        self, identity: Identity, changes: Mapping[str, Any]
    ) -> Identity:
        for key in UPDATABLE_FIELDS:
            if key not in changes:
                continue
            value = changes[key]
            if key == "email":
                value = normalize_email(value)
            elif key == "role":
                value = Role.parse(value)
            elif key == "name":
                value = value.strip()
            setattr(identity, key, value)
        self._flush()
        return identity

    @repository_method
    def deactivate(self, identity: Identity) -> Identity:
        identity.is_active = False
        self._flush()
        return identity

    @repository_method
    def touch_login(
        self, identity: Identity, at: Optional[datetime] = None
    ) -> Identity:
        identity.last_login_at = at or datetime.now(timezone.utc)
        self._flush()
        return identity


__all__ = ["IdentityRepository", "normalize_email"]
