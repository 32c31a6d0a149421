"""
Utilities module: Exceptions, validators, schemas.
"""

from shared.utils.exceptions import (
    AppException,
    NotFoundError,
    TableNotFoundError,
    RecordNotFoundError,
    ForbiddenError,
    ValidationError,
    UnknownFieldError,
    ConflictError,
    ReferentialError,
    TransientError,
    SchemaError,
    DatabaseError,
)
from shared.utils.validators import (
    fold_diacritics,
    fold_key,
    is_blank,
    sanitize_search_term,
)
from shared.utils.schemas import ErrorResponse

__all__ = [
    # exceptions
    "AppException",
    "NotFoundError",
    "TableNotFoundError",
    "RecordNotFoundError",
    "ForbiddenError",
    "ValidationError",
    "UnknownFieldError",
    "ConflictError",
    "ReferentialError",
    "TransientError",
    "SchemaError",
    "DatabaseError",
    # validators
    "fold_diacritics",
    "fold_key",
    "is_blank",
    "sanitize_search_term",
    # schemas
    "ErrorResponse",
]
