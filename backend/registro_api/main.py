"""
REST API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI

from shared.config.settings import settings
from shared.infrastructure.correlation import CorrelationIdMiddleware
from registro_api.core.cors import configure_cors
from registro_api.core.handlers import register_exception_handlers
from registro_api.core.lifespan import lifespan
from registro_api.routers import audit_router, catalog_router, health_router, tables_router


# Create FastAPI application
app = FastAPI(
    title="Registro REST API",
    description="Dynamic table data management with audit trail",
    version="0.1.0",
    lifespan=lifespan,
)

configure_cors(app)
app.add_middleware(CorrelationIdMiddleware)
register_exception_handlers(app)

app.include_router(health_router)
app.include_router(tables_router)
app.include_router(catalog_router)
app.include_router(audit_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "registro_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=settings.debug,
    )
