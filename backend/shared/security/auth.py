"""
Principal resolution and role checks.

Tokens are issued by the external authentication service; this module only
verifies them (HS256 JWT, issuer/audience from settings) and exposes the
authenticated principal to route handlers.

Usage:
    @router.post("/tables/{table_name}/create")
    def create(principal: Principal = Depends(RequireRole(Roles.EDITOR, Roles.ADMIN))):
        ...

    @router.get("/tables/{table_name}/read")
    def read(principal: Principal | None = Depends(reader_principal)):
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import jwt
from fastapi import Depends, Header

from shared.config.settings import JWT_SECRET, JWT_ISSUER, JWT_AUDIENCE, settings
from shared.config.logging import get_logger
from shared.utils.exceptions import InsufficientRoleError, UnauthorizedError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as asserted by the auth service."""

    id: str
    email: str | None
    display_name: str | None
    role: str
    token_id: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> Principal:
        """Build a principal from verified JWT claims."""
        role = claims.get("role")
        if role is None:
            # Tokens may carry a list of roles; the first one is the effective role
            roles = claims.get("roles") or []
            role = roles[0] if roles else ""
        return cls(
            id=str(claims["sub"]),
            email=claims.get("email"),
            display_name=claims.get("name"),
            role=str(role).upper(),
            token_id=claims.get("jti"),
        )


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Raises:
        UnauthorizedError: If token is invalid, expired or lacks a subject.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token inválido o expirado")
    except jwt.InvalidTokenError as e:
        # Log the actual error for debugging, but return generic message to client
        logger.warning("JWT validation failed", error=str(e))
        raise UnauthorizedError("Token inválido o expirado")

    if not payload.get("sub"):
        raise UnauthorizedError("Token inválido: falta el sujeto")

    return payload


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract bearer token from Authorization header.

    Raises:
        UnauthorizedError: If header is missing or malformed.
    """
    if not authorization:
        raise UnauthorizedError("Token requerido")
    if not authorization.startswith("Bearer "):
        raise UnauthorizedError("Formato de Authorization inválido. Se espera: Bearer <token>")
    return authorization.split(" ", 1)[1].strip()


def current_principal(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    """FastAPI dependency: the authenticated principal (401 when absent)."""
    token = get_bearer_token(authorization)
    return Principal.from_claims(verify_jwt(token))


def optional_principal(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal | None:
    """
    FastAPI dependency: the principal when a token is sent, None otherwise.

    An invalid token is still rejected; only a missing header is anonymous.
    """
    if not authorization:
        return None
    return current_principal(authorization)


def reader_principal(
    principal: Principal | None = Depends(optional_principal),
) -> Principal | None:
    """Principal for read endpoints; anonymous only when ALLOW_ANONYMOUS_READS is set."""
    if principal is None and not settings.allow_anonymous_reads:
        raise UnauthorizedError("Token requerido")
    return principal


def require_roles(principal: Principal, allowed: list[str] | tuple[str, ...]) -> None:
    """
    Verify that the principal has one of the allowed roles.

    Raises:
        InsufficientRoleError: If the principal lacks the required role.
    """
    if principal.role not in allowed:
        raise InsufficientRoleError(list(allowed), principal_id=principal.id, role=principal.role)


class RequireRole:
    """
    Dependency factory that resolves the principal and checks its role.

    Usage:
        principal: Principal = Depends(RequireRole(Roles.ADMIN))
    """

    def __init__(self, *roles: str):
        self.roles = roles

    def __call__(self, principal: Principal = Depends(current_principal)) -> Principal:
        require_roles(principal, self.roles)
        return principal
