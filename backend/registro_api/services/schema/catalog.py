"""
Metadata catalog readers.

Resolve the shape of a dynamic table at request time. Two interchangeable
sources implement the CatalogReader protocol:

- InspectorCatalogReader: the store's own catalog, through SQLAlchemy's
  runtime inspection API (default).
- ShadowCatalogReader: the application-maintained app_information_schema
  table.

Both hide app-owned tables (audit_log, table_categories,
app_information_schema) and any configured exclusion.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from sqlalchemy import distinct, inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import CompileError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import sqltypes

from shared.config.constants import INTERNAL_TABLES
from shared.config.logging import get_logger
from shared.config.settings import EntityTable, Settings
from shared.infrastructure.db import translate_db_error
from shared.utils.exceptions import SchemaError, TableNotFoundError

from registro_api.models import AppInformationSchema
from .types import ColumnDescriptor, ForeignKeyRef, TableSchema, TypeCategory

logger = get_logger(__name__)


class CatalogReader(Protocol):
    """Source of table metadata."""

    def table_names(self) -> list[str]: ...

    def describe(self, table_name: str) -> TableSchema: ...

    def enum_values(self, enum_name: str) -> list[str]: ...


class _BaseCatalogReader:
    """Shared visibility rules and entity lookups."""

    def __init__(
        self,
        engine: Engine,
        *,
        schema_name: str | None = None,
        entity_tables: Iterable[EntityTable] = (),
        excluded_tables: Iterable[str] = (),
    ) -> None:
        self._engine = engine
        self._schema_name = schema_name
        self._entities = {e.table_name: e for e in entity_tables}
        self._hidden = frozenset(INTERNAL_TABLES) | frozenset(excluded_tables)

    def is_visible(self, table_name: str) -> bool:
        return table_name not in self._hidden

    def _foreign_key(self, target_table: str, target_column: str) -> ForeignKeyRef:
        entity = self._entities.get(target_table)
        return ForeignKeyRef(
            target_table=target_table,
            target_column=target_column,
            display_column=entity.name_column if entity else None,
        )

    def enum_values(self, enum_name: str) -> list[str]:
        """
        Values of a user-defined enumerated type, in declaration order.

        Only PostgreSQL has named enum types; other stores return an empty
        list, as does an unknown enum name.
        """
        try:
            with self._engine.connect() as conn:
                if conn.dialect.name != "postgresql":
                    return []
                enums = inspect(conn).get_enums(schema=self._schema_name or "*")
        except SQLAlchemyError as exc:
            raise translate_db_error(exc, "lectura de tipos enumerados", enum=enum_name) from exc

        for enum in enums:
            if enum["name"] == enum_name:
                return list(enum["labels"])
        return []


class InspectorCatalogReader(_BaseCatalogReader):
    """Reads table metadata from the store's catalog via sqlalchemy.inspect()."""

    def table_names(self) -> list[str]:
        try:
            with self._engine.connect() as conn:
                names = inspect(conn).get_table_names(schema=self._schema_name)
        except SQLAlchemyError as exc:
            raise translate_db_error(exc, "listado de tablas") from exc
        return sorted(n for n in names if self.is_visible(n))

    def describe(self, table_name: str) -> TableSchema:
        """
        Resolve one table.

        Raises:
            TableNotFoundError: table absent or hidden
            SchemaError: table exists but reports no columns
        """
        if not self.is_visible(table_name):
            raise TableNotFoundError(table_name)

        try:
            with self._engine.connect() as conn:
                # Fresh inspector per call: Inspector caches reflection results
                insp = inspect(conn)
                if not insp.has_table(table_name, schema=self._schema_name):
                    raise TableNotFoundError(table_name)
                raw_columns = insp.get_columns(table_name, schema=self._schema_name)
                pk = insp.get_pk_constraint(table_name, schema=self._schema_name)
                raw_fks = insp.get_foreign_keys(table_name, schema=self._schema_name)
                dialect = conn.dialect
        except SQLAlchemyError as exc:
            raise translate_db_error(exc, "lectura de esquema", table=table_name) from exc

        if not raw_columns:
            raise SchemaError(table_name, "la introspección no devolvió columnas")

        columns = []
        for position, raw in enumerate(raw_columns, start=1):
            sql_type = raw["type"]
            declared = _type_string(sql_type, dialect)
            default = raw.get("default")
            columns.append(
                ColumnDescriptor(
                    name=raw["name"],
                    declared_type=declared,
                    nullable=bool(raw.get("nullable", True)),
                    has_default=default is not None or bool(raw.get("identity") or raw.get("computed")),
                    ordinal_position=position,
                    category=TypeCategory.from_sql_type(sql_type, declared),
                    max_length=_max_length(sql_type),
                    default=str(default) if default is not None else None,
                )
            )

        foreign_keys: dict[str, ForeignKeyRef] = {}
        for fk in raw_fks:
            for local, remote in zip(fk["constrained_columns"], fk["referred_columns"]):
                foreign_keys.setdefault(local, self._foreign_key(fk["referred_table"], remote))

        schema = TableSchema.build(
            table_name,
            columns,
            declared_primary_key=list(pk.get("constrained_columns") or []),
            foreign_keys=foreign_keys,
        )
        logger.debug(
            "Described table",
            table=table_name,
            columns=len(schema.columns),
            primary_key=schema.primary_key,
            primary_key_declared=schema.primary_key_declared,
        )
        return schema


class ShadowCatalogReader(_BaseCatalogReader):
    """Reads table metadata from the app_information_schema table."""

    def table_names(self) -> list[str]:
        try:
            with Session(self._engine) as session:
                names = session.scalars(
                    select(distinct(AppInformationSchema.table_name))
                ).all()
        except SQLAlchemyError as exc:
            raise translate_db_error(exc, "listado de tablas") from exc
        return sorted(n for n in names if self.is_visible(n))

    def describe(self, table_name: str) -> TableSchema:
        if not self.is_visible(table_name):
            raise TableNotFoundError(table_name)

        try:
            with Session(self._engine) as session:
                rows = session.scalars(
                    select(AppInformationSchema)
                    .where(AppInformationSchema.table_name == table_name)
                    .order_by(AppInformationSchema.ordinal_position)
                ).all()
        except SQLAlchemyError as exc:
            raise translate_db_error(exc, "lectura de esquema", table=table_name) from exc

        if not rows:
            raise TableNotFoundError(table_name)

        columns = [
            ColumnDescriptor.from_declared(
                row.column_name,
                row.data_type,
                ordinal_position=row.ordinal_position,
                nullable=row.is_nullable,
                default=row.column_default,
                max_length=row.max_length,
            )
            for row in rows
        ]
        foreign_keys = {
            row.column_name: self._foreign_key(row.foreign_table, row.foreign_column or row.column_name)
            for row in rows
            if row.is_foreign_key and row.foreign_table
        }
        return TableSchema.build(
            table_name,
            columns,
            declared_primary_key=[row.column_name for row in rows if row.is_primary_key],
            foreign_keys=foreign_keys,
        )


def build_catalog_reader(engine: Engine, settings: Settings) -> CatalogReader:
    """Catalog reader selected by CATALOG_SOURCE."""
    options = dict(
        schema_name=settings.schema_name,
        entity_tables=settings.entity_tables,
        excluded_tables=settings.excluded_tables,
    )
    if settings.catalog_source == "shadow":
        return ShadowCatalogReader(engine, **options)
    return InspectorCatalogReader(engine, **options)


def _type_string(sql_type: sqltypes.TypeEngine, dialect) -> str:
    """Dialect spelling of a reflected type ("VARCHAR(50)", "TIMESTAMP WITHOUT TIME ZONE")."""
    try:
        return sql_type.compile(dialect=dialect)
    except CompileError:
        # NullType and other types without DDL
        return type(sql_type).__name__.upper()


def _max_length(sql_type: sqltypes.TypeEngine) -> int | None:
    length = getattr(sql_type, "length", None)
    return length if isinstance(length, int) else None
