"""
Navigation and shadow-catalog models.

- TableCategory: groups dynamic tables into navigation categories.
- AppInformationSchema: application-maintained column catalog, used when
  CATALOG_SOURCE=shadow instead of the store's own catalog.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK


class TableCategory(Base):
    """One (category, table) membership row."""

    __tablename__ = "table_categories"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    category_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    category_display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_description: Mapped[Optional[str]] = mapped_column(Text)
    category_icon: Mapped[Optional[str]] = mapped_column(String(16))

    table_name: Mapped[str] = mapped_column(String(255), nullable=False)
    table_display_name: Mapped[Optional[str]] = mapped_column(String(255))
    table_description: Mapped[Optional[str]] = mapped_column(Text)
    table_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class AppInformationSchema(Base):
    """One column of one dynamic table, as declared by the application."""

    __tablename__ = "app_information_schema"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    column_name: Mapped[str] = mapped_column(String(255), nullable=False)
    data_type: Mapped[str] = mapped_column(String(100), nullable=False)
    is_nullable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    column_default: Mapped[Optional[str]] = mapped_column(Text)
    ordinal_position: Mapped[int] = mapped_column(Integer, nullable=False)
    max_length: Mapped[Optional[int]] = mapped_column(Integer)
    is_primary_key: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_foreign_key: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    foreign_table: Mapped[Optional[str]] = mapped_column(String(255))
    foreign_column: Mapped[Optional[str]] = mapped_column(String(255))
