"""
API routers.
"""

from .audit import router as audit_router
from .catalog import router as catalog_router
from .health import router as health_router
from .tables import router as tables_router

__all__ = ["audit_router", "catalog_router", "health_router", "tables_router"]
