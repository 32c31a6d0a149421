"""
Security module: principal resolution and role checks.
"""

from shared.security.auth import (
    Principal,
    verify_jwt,
    get_bearer_token,
    current_principal,
    optional_principal,
    reader_principal,
    require_roles,
    RequireRole,
)

__all__ = [
    "Principal",
    "verify_jwt",
    "get_bearer_token",
    "current_principal",
    "optional_principal",
    "reader_principal",
    "require_roles",
    "RequireRole",
]
