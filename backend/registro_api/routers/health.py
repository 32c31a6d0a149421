"""
Health check endpoints.
"""

import time
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.config.logging import registro_logger as logger
from shared.infrastructure.db import get_db

from registro_api.core.state import AppState, get_app_state

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Basic health check: the store answers a trivial query."""
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check failed", error=str(exc))
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "error": str(exc)},
        )
    return {
        "status": "healthy",
        "service": "registro-api",
        "database": "connected",
        "environment": settings.environment,
        "responseTimeMs": round((time.perf_counter() - started) * 1000, 2),
    }


@router.get("/api/health/detailed")
def detailed_health_check(
    db: Session = Depends(get_db),
    state: AppState = Depends(get_app_state),
):
    """
    Detailed health check.
    Reports store connectivity, the catalog source and the schema cache.
    """
    checks: dict[str, Any] = {
        "service": "registro-api",
        "environment": settings.environment,
        "dependencies": {},
    }
    all_healthy = True

    try:
        db.execute(text("SELECT 1"))
        checks["dependencies"]["database"] = {"status": "healthy"}
    except SQLAlchemyError as exc:
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(exc)}
        all_healthy = False

    checks["catalog"] = {
        "source": state.settings.catalog_source,
        "cached_tables": state.registry.cached_tables(),
    }
    checks["status"] = "healthy" if all_healthy else "degraded"

    if not all_healthy:
        return JSONResponse(content=checks, status_code=503)
    return checks
