"""
Foreign-key enrichment for reads and searches.

Tables that reference an entity (cooperativa / mutual) by matricula are
returned joined with the entity's display name and locality, aliased
entidad_nombre and entidad_localidad.

Target entity, first match wins:
    1. declared foreign key on the matricula column pointing to an entity
    2. entity hint in the column name ("matricula_coop" -> cooperativas),
       then in the table name
    3. the first configured entity table
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import column, null, table
from sqlalchemy.sql.expression import ColumnElement, FromClause, TableClause

from shared.config.constants import ENTITY_LOCALITY_ALIAS, ENTITY_NAME_ALIAS
from shared.config.logging import get_logger
from shared.config.settings import EntityTable
from shared.utils.validators import fold_key

from registro_api.services.schema import SchemaRegistry, TableSchema

logger = get_logger(__name__)

MATRICULA_TOKEN = "matricula"


@dataclass(frozen=True)
class EnrichmentPlan:
    """Inner join from a dependent table to one entity table."""

    source_column: str
    entity_table: str
    key_column: str
    name_column: str
    locality_column: str | None
    schema_name: str | None = None

    def apply(self, base: TableClause) -> tuple[FromClause, list[ColumnElement]]:
        """Join clause and the two display columns for a select over base."""
        entity_columns = [column(self.key_column), column(self.name_column)]
        if self.locality_column:
            entity_columns.append(column(self.locality_column))
        entity = table(self.entity_table, *entity_columns, schema=self.schema_name).alias("entidad_ref")

        joined = base.join(entity, base.c[self.source_column] == entity.c[self.key_column])
        locality = entity.c[self.locality_column] if self.locality_column else null()
        return joined, [
            entity.c[self.name_column].label(ENTITY_NAME_ALIAS),
            locality.label(ENTITY_LOCALITY_ALIAS),
        ]


def find_matricula_column(schema: TableSchema) -> str | None:
    for name in schema.column_names:
        if MATRICULA_TOKEN in fold_key(name):
            return name
    return None


class ForeignKeyEnricher:
    """Plans entity joins; never raises for tables that cannot be enriched."""

    def __init__(
        self,
        registry: SchemaRegistry,
        entity_tables: Sequence[EntityTable],
        schema_name: str | None = None,
    ) -> None:
        self._registry = registry
        self._entities = list(entity_tables)
        self._schema_name = schema_name

    def is_entity_table(self, table_name: str) -> bool:
        return any(e.table_name == table_name for e in self._entities)

    def plan(self, schema: TableSchema) -> EnrichmentPlan | None:
        if not self._entities or self.is_entity_table(schema.table_name):
            return None

        source = find_matricula_column(schema)
        if source is None:
            return None

        entity, key_column = self._target_entity(schema, source)

        # Join only against an entity table that exists and has the display columns
        if not self._registry.exists(entity.table_name):
            logger.debug("Entity table missing, skipping enrichment", table=schema.table_name, entity=entity.table_name)
            return None
        entity_schema = self._registry.get(entity.table_name)
        if not (entity_schema.has_column(key_column) and entity_schema.has_column(entity.name_column)):
            logger.warning(
                "Entity table lacks join columns, skipping enrichment",
                table=schema.table_name,
                entity=entity.table_name,
                key_column=key_column,
                name_column=entity.name_column,
            )
            return None

        return EnrichmentPlan(
            source_column=source,
            entity_table=entity.table_name,
            key_column=key_column,
            name_column=entity.name_column,
            locality_column=entity.locality_column if entity_schema.has_column(entity.locality_column) else None,
            schema_name=self._schema_name,
        )

    def _target_entity(self, schema: TableSchema, source: str) -> tuple[EntityTable, str]:
        fk = schema.foreign_keys.get(source)
        if fk is not None:
            for entity in self._entities:
                if entity.table_name == fk.target_table:
                    return entity, fk.target_column

        for hint_source in (source, schema.table_name):
            folded = fold_key(hint_source)
            for entity in self._entities:
                if entity.name_hint and entity.name_hint in folded:
                    return entity, entity.key_column

        entity = self._entities[0]
        return entity, entity.key_column
