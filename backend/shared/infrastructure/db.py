"""
Database configuration and session management.
Uses SQLAlchemy 2.0 patterns.

The engine owns a bounded connection pool shared by all requests. Requests
wait at most DB_POOL_TIMEOUT seconds for a free connection.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import sessionmaker, Session

from shared.config.settings import settings, DATABASE_URL
from shared.utils.exceptions import (
    AppException,
    ConflictError,
    DatabaseError,
    ReferentialError,
    TransientError,
)

# PostgreSQL SQLSTATE codes
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


def build_engine(url: str = DATABASE_URL) -> Engine:
    """Create an engine with pooling and timeouts from settings."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        connect_args={"connect_timeout": settings.db_connect_timeout},
        echo=False,  # Set to True for SQL logging in development
    )


engine = build_engine()

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Usage:
        @app.get("/items")
        def get_items(db: Session = Depends(get_db)):
            return db.execute(select(...)).all()

    The session is automatically closed after the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            db.execute(select(...))
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _sqlstate(exc: DBAPIError) -> str | None:
    """SQLSTATE of the driver error (psycopg exposes it as .sqlstate, psycopg2 as .pgcode)."""
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _is_connectivity_error(exc: DBAPIError) -> bool:
    """Connection lost, refused or invalidated (SQLSTATE class 08)."""
    if exc.connection_invalidated or isinstance(exc, InterfaceError):
        return True
    if isinstance(exc, OperationalError):
        code = _sqlstate(exc) or ""
        return code.startswith("08") or "connection" in str(exc.orig).lower()
    return False


def translate_db_error(exc: SQLAlchemyError, operation: str, **log_context) -> AppException:
    """
    Map a store error to the domain error category.

    - unique violation -> ConflictError
    - foreign-key violation -> ReferentialError
    - lost/invalidated connection -> TransientError (caller may retry)
    - anything else -> DatabaseError

    Usage:
        try:
            db.execute(stmt)
        except SQLAlchemyError as exc:
            db.rollback()
            raise translate_db_error(exc, "creación de registro", table=name) from exc
    """
    if isinstance(exc, IntegrityError):
        code = _sqlstate(exc)
        message = str(exc.orig).lower()
        if code == UNIQUE_VIOLATION or "unique constraint" in message:
            return ConflictError(
                "Ya existe un registro con esos datos",
                operation=operation,
                **log_context,
            )
        if code == FOREIGN_KEY_VIOLATION or "foreign key constraint" in message:
            return ReferentialError(operation=operation, **log_context)
        return DatabaseError(operation, error=str(exc.orig), **log_context)

    if isinstance(exc, PoolTimeoutError):
        return TransientError(operation=operation, error=str(exc), **log_context)

    if isinstance(exc, DBAPIError) and _is_connectivity_error(exc):
        return TransientError(operation=operation, error=str(exc.orig), **log_context)

    return DatabaseError(operation, error=str(exc), **log_context)
