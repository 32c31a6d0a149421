"""
Infrastructure module: database and request correlation.

Provides:
- Database engine, sessions and error translation (db.py)
- Request correlation IDs for logs and audit entries (correlation.py)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db,
    get_db_context,
    translate_db_error,
)
from shared.infrastructure.correlation import (
    CorrelationIdMiddleware,
    get_request_id,
)

__all__ = [
    # db
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "translate_db_error",
    # correlation
    "CorrelationIdMiddleware",
    "get_request_id",
]
