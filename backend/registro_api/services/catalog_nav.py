"""
Navigation catalog: table categories and enumerated-type options.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.infrastructure.db import translate_db_error
from shared.utils.exceptions import NotFoundError

from registro_api.models import TableCategory
from registro_api.services.schema import CatalogReader


def list_categories(db: Session) -> list[dict[str, Any]]:
    """Active categories ordered by name, one entry per category."""
    try:
        rows = db.scalars(
            select(TableCategory)
            .where(TableCategory.is_active.is_(True))
            .order_by(TableCategory.category_name, TableCategory.table_order)
        ).all()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc, "lectura de categorías") from exc

    categories: dict[str, dict[str, Any]] = {}
    for row in rows:
        categories.setdefault(
            row.category_name,
            {
                "category_name": row.category_name,
                "category_display_name": row.category_display_name,
                "category_description": row.category_description,
                "category_icon": row.category_icon,
            },
        )
    return list(categories.values())


def list_category_tables(db: Session, category_name: str) -> list[dict[str, Any]]:
    """
    Active tables of one category ordered by table_order.

    Raises:
        NotFoundError: category unknown or without active tables
    """
    try:
        rows = db.scalars(
            select(TableCategory)
            .where(
                TableCategory.category_name == category_name,
                TableCategory.is_active.is_(True),
            )
            .order_by(TableCategory.table_order, TableCategory.table_name)
        ).all()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc, "lectura de tablas por categoría", category=category_name) from exc

    if not rows:
        raise NotFoundError("Categoría", category_name)

    return [
        {
            "table_name": row.table_name,
            "table_display_name": row.table_display_name,
            "table_description": row.table_description,
            "table_order": row.table_order,
        }
        for row in rows
    ]


def enum_options(reader: CatalogReader, names: list[str]) -> dict[str, list[str]]:
    """Values of every configured enum type, keyed by type name."""
    return {name: reader.enum_values(name) for name in names}
