"""
Centralized HTTP exceptions for consistent error handling.

Every error surfaced by the catalog reader, condition builder and CRUD
executor is one of these categories. The application exception handler
renders them as {"success": false, "message": detail}.

Usage:
    from shared.utils.exceptions import NotFoundError, ValidationError

    raise TableNotFoundError("cooperativas")
    raise UnknownFieldError("Cooperativa", "mutuales")
    raise ValidationError("Se requiere criterio de búsqueda válido")
"""

from fastapi import HTTPException, status
from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Registro")
        raise NotFoundError("Tipo enumerado", "localidad")
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} '{entity_id}' no encontrado"
        else:
            detail = f"{entity} no encontrado"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class TableNotFoundError(NotFoundError):
    """Table absent from the catalog (or not exposed)."""

    def __init__(self, table_name: str, **log_context: Any):
        AppException.__init__(
            self,
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tabla '{table_name}' no encontrada",
            log_level="warning",
            table=table_name,
            **log_context,
        )


class RecordNotFoundError(NotFoundError):
    """No row matches the search criterion."""

    def __init__(self, field: str, value: Any, **log_context: Any):
        AppException.__init__(
            self,
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Registro no encontrado con {field}={value}",
            log_level="warning",
            field=field,
            value=value,
            **log_context,
        )


# =============================================================================
# 401 / 403 Errors
# =============================================================================


class UnauthorizedError(AppException):
    """Missing or invalid credentials (401)."""

    def __init__(self, detail: str = "Token requerido", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            log_level="warning",
            headers={"WWW-Authenticate": "Bearer"},
            **log_context,
        )


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("consultar la auditoría")
    """

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"No autorizado para {action}"
        else:
            detail = "Acceso denegado"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


class InsufficientRoleError(ForbiddenError):
    """User doesn't have the required role."""

    def __init__(self, required_roles: list[str], **log_context: Any):
        roles_str = ", ".join(required_roles)
        super().__init__(
            f"realizar esta acción (requiere rol: {roles_str})",
            required_roles=required_roles,
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("No hay datos para crear el registro")
        raise ValidationError("Fecha inválida", field="dateFrom", value="31/02")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class UnknownFieldError(ValidationError):
    """Field is not a column of the resolved table schema."""

    def __init__(self, field: str, table_name: str, **log_context: Any):
        super().__init__(
            f"El campo '{field}' no existe en la tabla '{table_name}'",
            field=field,
            table=table_name,
            **log_context,
        )


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Uniqueness conflict (409).

    Usage:
        raise ConflictError("Ya existe un registro con esos datos")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class ReferentialError(AppException):
    """Foreign-key constraint violation (409)."""

    def __init__(
        self,
        detail: str = "La operación viola una referencia entre tablas",
        **log_context: Any,
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


# =============================================================================
# 500 / 503 Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).

    Usage:
        raise InternalError("Error al exportar", table="mutuales")
    """

    def __init__(self, detail: str = "Error interno del servidor", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


class DatabaseError(InternalError):
    """Database operation failed."""

    def __init__(self, operation: str, **log_context: Any):
        detail = f"Error de base de datos durante {operation}. Por favor intente de nuevo."
        super().__init__(detail, operation=operation, **log_context)


class SchemaError(InternalError):
    """Catalog introspection returned an inconsistent result."""

    def __init__(self, table_name: str, reason: str, **log_context: Any):
        super().__init__(
            f"Esquema inconsistente para la tabla '{table_name}': {reason}",
            table=table_name,
            **log_context,
        )


class TransientError(AppException):
    """Connectivity loss with the backing store (503). Retryable by the caller."""

    def __init__(
        self,
        operation: str | None = None,
        retry_after: int = 5,
        **log_context: Any,
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Error de conexión con la base de datos",
            log_level="error",
            headers={"Retry-After": str(retry_after)},
            operation=operation,
            **log_context,
        )
