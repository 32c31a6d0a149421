"""
Navigation catalog endpoints: table categories and enum options.
"""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from shared.security.auth import Principal, reader_principal

from registro_api.core.state import AppState, get_app_state
from registro_api.services.catalog_nav import enum_options, list_categories, list_category_tables

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/categories")
def get_categories(
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(reader_principal),
) -> dict[str, Any]:
    categories = list_categories(db)
    return {"success": True, "data": categories, "total": len(categories)}


@router.get("/categories/{category_name}/tables")
def get_category_tables(
    category_name: str,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(reader_principal),
) -> dict[str, Any]:
    tables = list_category_tables(db, category_name)
    return {"success": True, "data": tables, "total": len(tables), "category": category_name}


@router.get("/enum-options")
def get_enum_options(
    state: AppState = Depends(get_app_state),
    principal: Principal | None = Depends(reader_principal),
) -> dict[str, Any]:
    """Values of every configured enum type, for dropdowns."""
    return {
        "success": True,
        "data": enum_options(state.registry.reader, state.settings.enum_option_names),
    }


@router.get("/enum-options/{enum_name}")
def get_enum_option(
    enum_name: str,
    state: AppState = Depends(get_app_state),
    principal: Principal | None = Depends(reader_principal),
) -> dict[str, Any]:
    return {"success": True, "data": state.registry.reader.enum_values(enum_name)}
