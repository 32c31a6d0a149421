"""
Core type definitions for dynamic table schemas.

- TypeCategory: closed set of comparison semantics, derived once per column
- ColumnDescriptor: one catalog column
- ForeignKeyRef: one foreign-key edge
- TableSchema: the resolved, immutable description of a table

Invariants:
    - TableSchema and its parts are frozen; a cached schema is replaced
      wholesale, never mutated
    - columns are ordered by ordinal_position
    - primary_key always names one of the columns
    - every column's category is computed when the schema is built, never
      re-derived from the raw type string at call sites

Example:
    >>> schema = TableSchema.build(
    ...     "socios",
    ...     [ColumnDescriptor.from_declared("Legajo", "varchar", ordinal_position=1)],
    ...     declared_primary_key=[],
    ... )
    >>> schema.primary_key
    'Legajo'
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from sqlalchemy.sql import sqltypes


class TypeCategory(Enum):
    """Search semantics of a column type."""

    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    TEMPORAL = "temporal"
    ENUM = "enum"
    UUID = "uuid"
    JSON = "json"  # JSON documents and arrays
    TEXT = "text"
    OTHER = "other"

    @classmethod
    def from_declared(cls, declared_type: str | None) -> TypeCategory:
        """
        Classify a raw catalog type string.

        Accepts information_schema names ("character varying",
        "timestamp without time zone", "USER-DEFINED", "ARRAY") as well as
        DDL spellings ("VARCHAR(50)", "NUMERIC(10, 2)", "INTEGER[]").
        """
        if not declared_type:
            return cls.OTHER
        raw = declared_type.strip().lower()

        # Containers first: "integer[]" is an array, not a number
        if raw.endswith("[]") or raw.startswith("array") or raw == "array":
            return cls.JSON
        if _NUMERIC_TYPE.search(raw):
            return cls.NUMERIC
        if "bool" in raw:
            return cls.BOOLEAN
        if _TEMPORAL_TYPE.search(raw):
            return cls.TEMPORAL
        if raw == "user-defined" or raw.startswith("enum"):
            return cls.ENUM
        if "uuid" in raw or raw == "uniqueidentifier":
            return cls.UUID
        if "json" in raw:
            return cls.JSON
        if _TEXT_TYPE.search(raw):
            return cls.TEXT
        return cls.OTHER

    @classmethod
    def from_sql_type(cls, sql_type: sqltypes.TypeEngine, declared_type: str | None = None) -> TypeCategory:
        """Classify a reflected SQLAlchemy type, falling back to its type string."""
        if isinstance(sql_type, sqltypes.Boolean):
            return cls.BOOLEAN
        # Enum subclasses String, check it first
        if isinstance(sql_type, sqltypes.Enum):
            return cls.ENUM
        if isinstance(sql_type, (sqltypes.ARRAY, sqltypes.JSON)):
            return cls.JSON
        if isinstance(sql_type, (sqltypes.Integer, sqltypes.Numeric)):
            return cls.NUMERIC
        if isinstance(sql_type, (sqltypes.Date, sqltypes.DateTime, sqltypes.Time, sqltypes.Interval)):
            return cls.TEMPORAL
        if isinstance(sql_type, sqltypes.Uuid):
            return cls.UUID
        if isinstance(sql_type, sqltypes.String):
            return cls.TEXT
        return cls.from_declared(declared_type)


_NUMERIC_TYPE = re.compile(
    r"\b(?:tiny|small|medium|big)?int(?:eger|[248])?\b"
    r"|numeric|decimal|float|double|\breal\b|money|serial"
)
_TEMPORAL_TYPE = re.compile(r"date|time|interval")
_TEXT_TYPE = re.compile(r"char|text|clob|string|\bname\b")

# Primary-key fallback patterns
_ID_TOKEN = re.compile(r"(?:^|_)id(?:_|$)", re.IGNORECASE)
_ID_CAMEL = re.compile(r"^id[A-Z0-9]|[a-z0-9](?:Id|ID)$")


@dataclass(frozen=True)
class ColumnDescriptor:
    """One column of a dynamic table, as reported by the catalog."""

    name: str
    declared_type: str
    nullable: bool
    has_default: bool
    ordinal_position: int
    category: TypeCategory
    max_length: int | None = None
    default: str | None = None

    @classmethod
    def from_declared(
        cls,
        name: str,
        declared_type: str,
        *,
        ordinal_position: int,
        nullable: bool = True,
        default: str | None = None,
        max_length: int | None = None,
        category: TypeCategory | None = None,
    ) -> ColumnDescriptor:
        """Build a descriptor, classifying the raw type string when no category is given."""
        return cls(
            name=name,
            declared_type=declared_type,
            nullable=nullable,
            has_default=default is not None,
            ordinal_position=ordinal_position,
            category=category or TypeCategory.from_declared(declared_type),
            max_length=max_length,
            default=default,
        )


@dataclass(frozen=True)
class ForeignKeyRef:
    """
    A foreign-key edge from a column of this table.

    display_column is the column shown to users instead of the raw key;
    for entity tables it is the entity's name column.
    """

    target_table: str
    target_column: str
    display_column: str | None = None


@dataclass(frozen=True)
class TableSchema:
    """Resolved description of one dynamic table."""

    table_name: str
    columns: tuple[ColumnDescriptor, ...]
    primary_key: str
    primary_key_declared: bool = False
    foreign_keys: Mapping[str, ForeignKeyRef] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(
        cls,
        table_name: str,
        columns: Iterable[ColumnDescriptor],
        declared_primary_key: list[str],
        foreign_keys: Mapping[str, ForeignKeyRef] | None = None,
    ) -> TableSchema:
        """Order columns, resolve the primary key and freeze the result."""
        ordered = tuple(sorted(columns, key=lambda c: c.ordinal_position))
        primary_key, declared = resolve_primary_key(ordered, declared_primary_key)
        return cls(
            table_name=table_name,
            columns=ordered,
            primary_key=primary_key,
            primary_key_declared=declared,
            foreign_keys=MappingProxyType(dict(foreign_keys or {})),
        )

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def display_name(self) -> str:
        """cooperativas_activas -> Cooperativas Activas"""
        return " ".join(part[:1].upper() + part[1:] for part in self.table_name.split("_") if part)

    def column(self, name: str) -> ColumnDescriptor | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    def to_dict(self) -> dict[str, Any]:
        """Serializable form returned by the schema endpoint."""
        return {
            "tableName": self.table_name,
            "displayName": self.display_name,
            "primaryKey": self.primary_key,
            "primaryKeyDeclared": self.primary_key_declared,
            "columns": [self._column_dict(col) for col in self.columns],
        }

    def _column_dict(self, col: ColumnDescriptor) -> dict[str, Any]:
        fk = self.foreign_keys.get(col.name)
        return {
            "column_name": col.name,
            "data_type": col.declared_type,
            "category": col.category.value,
            "is_nullable": "YES" if col.nullable else "NO",
            "column_default": col.default,
            "ordinal_position": col.ordinal_position,
            "character_maximum_length": col.max_length,
            "is_primary_key": col.name == self.primary_key,
            "is_foreign_key": fk is not None,
            "foreign_table": fk.target_table if fk else None,
            "foreign_column": fk.target_column if fk else None,
            "foreign_display_column": fk.display_column if fk else None,
        }


def resolve_primary_key(
    columns: tuple[ColumnDescriptor, ...],
    declared: list[str],
) -> tuple[str, bool]:
    """
    Pick the identity column of a table.

    Order: (1) the declared primary key (first column of a composite key);
    (2) a column named exactly "id"; then a column with "id" as a name token
    ("id_socio", "socio_id", "idSocio"); then any column containing "id";
    (3) the first declared column. Legacy tables without a declared key
    rely on this order.

    Returns:
        (column name, whether it was declared by the store)
    """
    names = [c.name for c in columns]
    for name in declared:
        if name in names:
            return name, True

    for name in names:
        if name.lower() == "id":
            return name, False
    for name in names:
        if _ID_TOKEN.search(name) or _ID_CAMEL.search(name):
            return name, False
    for name in names:
        if "id" in name.lower():
            return name, False

    return names[0], False
