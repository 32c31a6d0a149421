"""
Generic CRUD executor for dynamic tables.

One instance per request, bound to the request's Session. Table shapes come
from the SchemaRegistry; statements are built with lightweight table()/column()
constructs, so identifiers are always quoted and values always bound.

Mutations:
    - update/delete read the pre-image with SELECT ... FOR UPDATE and mutate
      in the same transaction; the post-image comes from RETURNING
    - the criterion must match exactly one row
    - the audit entry is written after commit, in the recorder's own session
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import column, delete, insert, select, table, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql.expression import ColumnElement, TableClause

from shared.config.constants import (
    ENTITY_LOCALITY_ALIAS,
    ENTITY_NAME_ALIAS,
    INTERNAL_FIELDS,
    PRIMARY_KEY_FIELD,
    ROW_INDEX_FIELD,
    AuditAction,
)
from shared.config.logging import get_logger
from shared.infrastructure.db import translate_db_error
from shared.utils.exceptions import (
    AppException,
    RecordNotFoundError,
    TableNotFoundError,
    UnknownFieldError,
    ValidationError,
)
from shared.utils.validators import is_blank, is_valid_identifier, sanitize_search_term

from registro_api.services.audit import AuditContext, AuditRecorder
from registro_api.services.schema import ColumnDescriptor, SchemaRegistry, TableSchema
from .conditions import ConditionBuilder, SearchCondition
from .enrichment import ForeignKeyEnricher

logger = get_logger(__name__)

# Read-only display fields a client may echo back from a read
_DISPLAY_FIELDS = INTERNAL_FIELDS | {ENTITY_NAME_ALIAS, ENTITY_LOCALITY_ALIAS}


@dataclass
class ReadResult:
    table_name: str
    primary_key: str
    rows: list[dict[str, Any]]
    condition: SearchCondition | None = None
    enriched: bool = False

    @property
    def total(self) -> int:
        return len(self.rows)


@dataclass
class MutationResult:
    table_name: str
    primary_key: str
    primary_key_value: Any
    record: dict[str, Any]


def annotate(row: dict[str, Any], primary_key: str, index: int) -> dict[str, Any]:
    """Record with _primaryKey first and the 1-based _rowIndex last."""
    return {PRIMARY_KEY_FIELD: row.get(primary_key), **row, ROW_INDEX_FIELD: index}


class TableExecutor:
    """
    Create/read/search/update/delete against any table the catalog knows.

    Usage:
        executor = TableExecutor(db, registry, ConditionBuilder(), enricher, recorder)
        result = executor.search("legajos", "Cooperativa", "Unión")
    """

    def __init__(
        self,
        db: Session,
        registry: SchemaRegistry,
        builder: ConditionBuilder,
        enricher: ForeignKeyEnricher,
        recorder: AuditRecorder,
        schema_name: str | None = None,
    ) -> None:
        self._db = db
        self._registry = registry
        self._builder = builder
        self._enricher = enricher
        self._recorder = recorder
        self._schema_name = schema_name

    # =========================================================================
    # Metadata
    # =========================================================================

    def schema(self, table_name: str) -> TableSchema:
        if not is_valid_identifier(table_name):
            raise TableNotFoundError(table_name)
        return self._registry.get(table_name)

    def describe(self, table_name: str) -> dict[str, Any]:
        return self.schema(table_name).to_dict()

    def fields(self, table_name: str) -> list[dict[str, Any]]:
        schema = self.schema(table_name)
        return [
            {
                "name": col.name,
                "type": col.declared_type,
                "category": col.category.value,
                "isPrimaryKey": col.name == schema.primary_key,
            }
            for col in schema.columns
        ]

    def table_names(self) -> list[str]:
        return self._registry.reader.table_names()

    # =========================================================================
    # Reads
    # =========================================================================

    def read(self, table_name: str, enrich: bool = True) -> ReadResult:
        """Every row, ordered by primary key ascending. No pagination."""
        schema = self.schema(table_name)
        return self._select(schema, self._table(schema), None, enrich)

    def search(
        self,
        table_name: str,
        field: str | None,
        text: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        enrich: bool = True,
    ) -> ReadResult:
        """
        Rows matching one condition on one column.

        A date range (date_from/date_to) takes precedence over text. Empty
        text with no range behaves as read().

        Raises:
            UnknownFieldError: field is not a column (checked before querying)
        """
        schema = self.schema(table_name)
        text = sanitize_search_term(text)
        has_range = bool(date_from or date_to)

        if not field:
            if text or has_range:
                raise ValidationError("Se requiere el campo de búsqueda (searchField)")
            return self.read(table_name, enrich=enrich)

        descriptor = self._column(schema, field)
        base = self._table(schema)
        target = base.c[descriptor.name]

        if has_range:
            condition = self._builder.build_range(descriptor, date_from, date_to, target=target)
        elif text:
            condition = self._builder.build(descriptor, text, target=target)
        else:
            return self._select(schema, base, None, enrich)

        logger.debug(
            "Search condition built",
            table=table_name,
            field=field,
            mode=condition.mode.value,
            category=condition.category.value,
        )
        return self._select(schema, base, condition, enrich)

    def _select(
        self,
        schema: TableSchema,
        base: TableClause,
        condition: SearchCondition | None,
        enrich: bool,
    ) -> ReadResult:
        plan = self._enricher.plan(schema) if enrich else None

        columns: list[ColumnElement] = list(base.c)
        source = base
        if plan is not None:
            source, display_columns = plan.apply(base)
            columns.extend(display_columns)

        stmt = select(*columns).select_from(source)
        if condition is not None:
            stmt = stmt.where(condition.clause)
        stmt = stmt.order_by(base.c[schema.primary_key].asc())

        try:
            rows = self._db.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise translate_db_error(exc, "lectura de registros", table=schema.table_name) from exc

        records = [annotate(dict(row), schema.primary_key, i) for i, row in enumerate(rows, start=1)]
        return ReadResult(
            table_name=schema.table_name,
            primary_key=schema.primary_key,
            rows=records,
            condition=condition,
            enriched=plan is not None,
        )

    # =========================================================================
    # Mutations
    # =========================================================================

    def create(self, table_name: str, payload: dict[str, Any], ctx: AuditContext) -> MutationResult:
        """
        Insert one row.

        None and blank values are dropped so column defaults apply.

        Raises:
            UnknownFieldError: payload names a column the table lacks
            ValidationError: nothing left to insert, or a required key is missing
            ConflictError: the key or another unique column already exists
        """
        schema = self.schema(table_name)
        values = {
            key: value
            for key, value in self._known_fields(schema, payload).items()
            if not is_blank(value)
        }
        if not values:
            raise ValidationError("No hay datos para crear el registro", table=table_name)

        key_column = schema.column(schema.primary_key)
        if (
            schema.primary_key_declared
            and not key_column.nullable
            and not key_column.has_default
            and schema.primary_key not in values
        ):
            raise ValidationError(
                f"El campo {schema.primary_key} es obligatorio para crear un registro.",
                table=table_name,
            )

        base = self._table(schema)
        try:
            row = self._db.execute(insert(base).values(values).returning(*base.c)).mappings().one()
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise translate_db_error(exc, "creación de registro", table=table_name) from exc

        created = dict(row)
        key_value = created.get(schema.primary_key)
        logger.info("Record created", table=table_name, primary_key=schema.primary_key, key=key_value)

        self._recorder.record(AuditAction.CREATE, table_name, key_value, None, created, ctx)
        return MutationResult(table_name, schema.primary_key, key_value, created)

    def update(
        self,
        table_name: str,
        match_field: str,
        match_value: Any,
        changes: dict[str, Any],
        ctx: AuditContext,
    ) -> MutationResult:
        """
        Update the single row matching field = value.

        Raises:
            ValidationError: invalid criterion, empty change set, or more than one match
            UnknownFieldError: criterion or change names an unknown column
            RecordNotFoundError: no row matches
        """
        schema = self.schema(table_name)
        descriptor = self._criterion(schema, match_field, match_value)
        values = self._known_fields(schema, changes or {})
        if not values:
            raise ValidationError("No hay datos para actualizar", table=table_name)

        base = self._table(schema)
        match = self._builder.build_match(descriptor, match_value, target=base.c[descriptor.name])

        try:
            before = self._lock_single_row(schema, base, match)
            after = dict(
                self._db.execute(
                    update(base).where(match.clause).values(values).returning(*base.c)
                ).mappings().one()
            )
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise translate_db_error(exc, "actualización de registro", table=table_name) from exc
        except AppException:
            self._db.rollback()
            raise

        key_value = after.get(schema.primary_key)
        logger.info(
            "Record updated",
            table=table_name,
            match_field=match_field,
            fields=sorted(values),
            key=key_value,
        )

        self._recorder.record(AuditAction.UPDATE, table_name, key_value, before, after, ctx)
        return MutationResult(table_name, schema.primary_key, key_value, annotate(after, schema.primary_key, 1))

    def delete(self, table_name: str, match_field: str, match_value: Any, ctx: AuditContext) -> MutationResult:
        """Delete the single row matching field = value and return it."""
        schema = self.schema(table_name)
        descriptor = self._criterion(schema, match_field, match_value)

        base = self._table(schema)
        match = self._builder.build_match(descriptor, match_value, target=base.c[descriptor.name])

        try:
            before = self._lock_single_row(schema, base, match)
            self._db.execute(delete(base).where(match.clause))
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise translate_db_error(exc, "eliminación de registro", table=table_name) from exc
        except AppException:
            self._db.rollback()
            raise

        key_value = before.get(schema.primary_key)
        logger.info("Record deleted", table=table_name, match_field=match_field, key=key_value)

        self._recorder.record(AuditAction.DELETE, table_name, key_value, before, None, ctx)
        return MutationResult(table_name, schema.primary_key, key_value, before)

    def _lock_single_row(
        self,
        schema: TableSchema,
        base: TableClause,
        match: SearchCondition,
    ) -> dict[str, Any]:
        """Pre-image of the one row the criterion selects, locked until commit."""
        rows = self._db.execute(
            select(*base.c).where(match.clause).limit(2).with_for_update()
        ).mappings().all()

        if not rows:
            raise RecordNotFoundError(match.column, match.value, table=schema.table_name)
        if len(rows) > 1:
            raise ValidationError(
                f"El criterio {match.column}={match.value} coincide con más de un registro",
                table=schema.table_name,
            )
        return dict(rows[0])

    # =========================================================================
    # Helpers
    # =========================================================================

    def _table(self, schema: TableSchema) -> TableClause:
        return table(
            schema.table_name,
            *(column(name) for name in schema.column_names),
            schema=self._schema_name,
        )

    def _column(self, schema: TableSchema, field: str) -> ColumnDescriptor:
        descriptor = schema.column(field)
        if descriptor is None:
            raise UnknownFieldError(field, schema.table_name)
        return descriptor

    def _criterion(self, schema: TableSchema, field: str | None, value: Any) -> ColumnDescriptor:
        if not field or is_blank(value):
            raise ValidationError("Se requiere criterio de búsqueda válido", table=schema.table_name)
        return self._column(schema, field)

    def _known_fields(self, schema: TableSchema, payload: dict[str, Any]) -> dict[str, Any]:
        """Payload without display fields; any other unknown key is rejected."""
        values = {}
        for key, value in payload.items():
            if key in _DISPLAY_FIELDS and not schema.has_column(key):
                continue
            if not schema.has_column(key):
                raise UnknownFieldError(key, schema.table_name)
            values[key] = value
        return values
