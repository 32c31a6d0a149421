"""
Dynamic table schemas: types, catalog readers and the schema registry.
"""

from .types import ColumnDescriptor, ForeignKeyRef, TableSchema, TypeCategory, resolve_primary_key
from .catalog import (
    CatalogReader,
    InspectorCatalogReader,
    ShadowCatalogReader,
    build_catalog_reader,
)
from .registry import SchemaRegistry

__all__ = [
    "ColumnDescriptor",
    "ForeignKeyRef",
    "TableSchema",
    "TypeCategory",
    "resolve_primary_key",
    "CatalogReader",
    "InspectorCatalogReader",
    "ShadowCatalogReader",
    "build_catalog_reader",
    "SchemaRegistry",
]
