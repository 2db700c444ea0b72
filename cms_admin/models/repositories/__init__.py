"""Repositories for identity and audit persistence."""

from .audit import AuditFilters, AuditRecordRepository
from .base import RepositoryError, SQLAlchemyRepository, repository_method
from .identities import IdentityRepository, normalize_email

__all__ = [
    "AuditFilters",
    "AuditRecordRepository",
    "IdentityRepository",
    "RepositoryError",
    "SQLAlchemyRepository",
    "normalize_email",
    "repository_method",
]
