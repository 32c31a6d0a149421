"""
SQLAlchemy ORM Models Package (app-owned tables only).

- base: Base class
- audit: AuditLog (append-only, hash-chained)
- catalog: TableCategory, AppInformationSchema
"""

from .base import Base
from .audit import AuditLog, AuditLogImmutableError
from .catalog import TableCategory, AppInformationSchema

__all__ = [
    "Base",
    "AuditLog",
    "AuditLogImmutableError",
    "TableCategory",
    "AppInformationSchema",
]
