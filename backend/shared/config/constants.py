"""
Centralized constants for the backend application.
Avoid magic strings and repeated constants.

Usage:
    from shared.config.constants import Roles, AuditAction, MUTATION_ROLES

    if principal.role in MUTATION_ROLES:
        ...

    if entry.action == AuditAction.UPDATE:
        ...
"""

from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class Roles:
    """User role constants (issued by the external auth service)."""

    ADMIN: Final[str] = "ADMIN"
    EDITOR: Final[str] = "EDITOR"
    VIEWER: Final[str] = "VIEWER"

    ALL: Final[list[str]] = [ADMIN, EDITOR, VIEWER]


# Role groups for common access patterns
MUTATION_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.EDITOR})
AUDIT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN})


# =============================================================================
# Audit
# =============================================================================


class AuditAction:
    """Audit entry action constants."""

    CREATE: Final[str] = "CREATE"
    UPDATE: Final[str] = "UPDATE"
    DELETE: Final[str] = "DELETE"

    ALL: Final[list[str]] = [CREATE, UPDATE, DELETE]


# =============================================================================
# Dynamic tables
# =============================================================================


# Bookkeeping keys added to every returned record; never written to a table
PRIMARY_KEY_FIELD: Final[str] = "_primaryKey"
ROW_INDEX_FIELD: Final[str] = "_rowIndex"
INTERNAL_FIELDS: Final[frozenset[str]] = frozenset({PRIMARY_KEY_FIELD, ROW_INDEX_FIELD})

# App-owned tables that are never exposed through the generic API
AUDIT_TABLE: Final[str] = "audit_log"
CATEGORIES_TABLE: Final[str] = "table_categories"
SHADOW_CATALOG_TABLE: Final[str] = "app_information_schema"
INTERNAL_TABLES: Final[frozenset[str]] = frozenset(
    {AUDIT_TABLE, CATEGORIES_TABLE, SHADOW_CATALOG_TABLE}
)

# Free-text values that coerce to True in boolean searches (compared lowercased)
TRUTHY_VALUES: Final[frozenset[str]] = frozenset(
    {"true", "1", "sí", "si", "yes", "t", "verdadero"}
)

# Display aliases added by foreign-key enrichment
ENTITY_NAME_ALIAS: Final[str] = "entidad_nombre"
ENTITY_LOCALITY_ALIAS: Final[str] = "entidad_localidad"


class Limits:
    """Query limits."""

    AUDIT_DEFAULT_LIMIT: Final[int] = 100
    AUDIT_MAX_LIMIT: Final[int] = 1000
    SEARCH_TEXT_MAX_LENGTH: Final[int] = 200
