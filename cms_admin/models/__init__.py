"""Model exports for convenience."""

from cms_admin.db.session import Base
from cms_admin.models.audit import AuditAction, AuditRecord
from cms_admin.models.identity import Identity, Role

__all__ = [
    "Base",
    "AuditAction",
    "AuditRecord",
    "Identity",
    "Role",
]
