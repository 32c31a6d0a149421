"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.config.settings import settings
from shared.config.logging import setup_logging, registro_logger as logger
from shared.infrastructure.db import engine, SessionLocal
from registro_api.models import Base
from registro_api.core.state import build_app_state


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Initialize logging
    setup_logging()

    # Validate production secrets before startup
    secret_errors = settings.validate_production_secrets()
    if secret_errors:
        for error in secret_errors:
            logger.error("Configuration error: %s", error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(secret_errors)}. "
                "Server will not start with insecure configuration."
            )
        else:
            logger.warning(
                "Running with insecure defaults (acceptable for development only)"
            )

    # Startup
    logger.info(
        "Starting REST API",
        port=settings.rest_api_port,
        env=settings.environment,
        catalog_source=settings.catalog_source,
    )

    # App-owned tables only; dynamic tables are never created or migrated here
    Base.metadata.create_all(bind=engine)
    logger.info("Application tables created/verified")

    state = build_app_state(engine, SessionLocal, settings)
    app.state.registro = state

    if settings.schema_warm_tables:
        failed = state.registry.warm(settings.schema_warm_tables)
        logger.info(
            "Schema cache warmed",
            tables=state.registry.cached_tables(),
            failed=failed,
        )

    yield

    # Shutdown
    logger.info("Shutting down REST API")
    engine.dispose()
    logger.info("Database connection pool closed")
