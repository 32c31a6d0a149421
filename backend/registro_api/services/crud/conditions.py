"""
Condition builder: untyped search text -> type-aware, parameterized predicate.

Dispatches on the column's TypeCategory:

    NUMERIC   parsable finite number -> equality, else text substring
    BOOLEAN   equality against the truthy word list
    TEMPORAL  text substring (never parsed as a date)
    ENUM      text substring
    UUID      36 chars with "-" -> equality, else text substring
    JSON      text substring
    TEXT      case-insensitive substring, no cast
    OTHER     text substring

Identifiers are quoted by SQLAlchemy's identifier preparer and every value is
a bound parameter. LIKE wildcards in user text match literally (autoescape).
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import Boolean, Date, String, Uuid, and_, bindparam, cast, column, literal
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.elements import BindParameter, ColumnElement
from sqlalchemy.sql.functions import FunctionElement
from sqlalchemy.sql.sqltypes import NullType

from shared.config.constants import TRUTHY_VALUES
from shared.utils.exceptions import ValidationError

from registro_api.services.schema import ColumnDescriptor, TypeCategory

_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


class MatchMode(str, Enum):
    EQUALS = "EQUALS"
    CONTAINS = "CONTAINS"
    RANGE = "RANGE"


@dataclass(frozen=True)
class SearchCondition:
    """A ready-to-use WHERE clause plus the value it compares against."""

    column: str
    clause: ColumnElement[bool]
    value: Any
    mode: MatchMode
    category: TypeCategory

    @property
    def template(self) -> str:
        """Predicate text with bind placeholders (no values)."""
        return str(self.clause.compile(compile_kwargs={"render_postcompile": True}))


class as_date(FunctionElement):
    """Date part of a column: CAST(x AS DATE), date(x) on SQLite."""

    type = Date()
    name = "as_date"
    inherit_cache = True


@compiles(as_date)
def _compile_as_date(element, compiler, **kw):
    return "CAST(%s AS DATE)" % compiler.process(element.clauses, **kw)


@compiles(as_date, "sqlite")
def _compile_as_date_sqlite(element, compiler, **kw):
    return "date(%s)" % compiler.process(element.clauses, **kw)


def parse_number(raw: str) -> int | Decimal | None:
    """
    Parse search text as a finite number.

    Integral values come back as int, everything else as Decimal.
    Returns None for anything that is not a plain decimal literal.
    """
    text = raw.strip()
    if not _NUMBER.match(text):
        return None
    value = Decimal(text)
    if not value.is_finite():
        return None
    if value == value.to_integral_value():
        return int(value)
    return value


def parse_boolean(raw: str) -> bool:
    return raw.strip().lower() in TRUTHY_VALUES


def looks_like_uuid(raw: str) -> bool:
    if len(raw) != 36 or "-" not in raw:
        return False
    try:
        uuid.UUID(raw)
    except ValueError:
        return False
    return True


def untyped(value: Any) -> BindParameter:
    """
    Bound parameter carrying the value's text with no SQL type.

    No cast is rendered (psycopg would otherwise add ::VARCHAR or ::INTEGER),
    so PostgreSQL resolves the parameter against the column it is compared
    with. SQLite applies the column's affinity to it.
    """
    return bindparam("match_value", str(value), type_=NullType(), unique=True)


def parse_iso_date(raw: str, field: str) -> date:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise ValidationError(
            f"Fecha inválida en {field}: se espera AAAA-MM-DD",
            field=field,
            value=raw,
        )


class ConditionBuilder:
    """Builds SearchConditions for a resolved column."""

    def build(
        self,
        descriptor: ColumnDescriptor,
        raw_text: str,
        target: ColumnElement | None = None,
    ) -> SearchCondition:
        """Predicate for a free-text search on one column."""
        col = target if target is not None else column(descriptor.name)
        text = raw_text.strip()
        category = descriptor.category

        if category is TypeCategory.NUMERIC:
            number = parse_number(text)
            if number is not None:
                return self._equals(descriptor, col == untyped(number), number)
            return self._contains(descriptor, cast(col, String), text)

        if category is TypeCategory.BOOLEAN:
            flag = parse_boolean(text)
            return self._equals(descriptor, col == literal(flag, Boolean()), flag)

        if category is TypeCategory.UUID:
            if looks_like_uuid(text):
                return self._equals(descriptor, col == cast(untyped(text), Uuid), text)
            return self._contains(descriptor, cast(col, String), text)

        if category is TypeCategory.TEXT:
            return self._contains(descriptor, col, text)

        # TEMPORAL, ENUM, JSON, OTHER
        return self._contains(descriptor, cast(col, String), text)

    def build_range(
        self,
        descriptor: ColumnDescriptor,
        date_from: str | None,
        date_to: str | None,
        target: ColumnElement | None = None,
    ) -> SearchCondition:
        """
        Date-range predicate on the date part of a column. Bounds are
        inclusive and each one is optional, but at least one is required.
        """
        col = target if target is not None else column(descriptor.name)
        start = parse_iso_date(date_from, "dateFrom") if date_from else None
        end = parse_iso_date(date_to, "dateTo") if date_to else None

        if start is None and end is None:
            raise ValidationError("Se requiere al menos una fecha (dateFrom o dateTo)")
        if start and end and start > end:
            raise ValidationError(
                "La fecha inicial no puede ser posterior a la final",
                date_from=start.isoformat(),
                date_to=end.isoformat(),
            )

        day = as_date(col)
        bounds = []
        if start is not None:
            bounds.append(day >= literal(start, Date()))
        if end is not None:
            bounds.append(day <= literal(end, Date()))

        return SearchCondition(
            column=descriptor.name,
            clause=and_(*bounds),
            value=(start, end),
            mode=MatchMode.RANGE,
            category=descriptor.category,
        )

    def build_match(
        self,
        descriptor: ColumnDescriptor,
        value: Any,
        target: ColumnElement | None = None,
    ) -> SearchCondition:
        """
        Exact-match predicate for an update/delete criterion.

        Text criteria on numeric, boolean and UUID columns are coerced with
        the same rules as search. Every other value is sent as untyped text
        and the store converts it to the column's type, so dates, enums and
        money columns compare without an operator mismatch.
        """
        col = target if target is not None else column(descriptor.name)
        category = descriptor.category

        if category is TypeCategory.NUMERIC and isinstance(value, str):
            number = parse_number(value)
            if number is None:
                raise ValidationError(
                    f"Valor inválido para el campo numérico '{descriptor.name}'",
                    field=descriptor.name,
                    value=value,
                )
            value = number
        elif category is TypeCategory.BOOLEAN and not isinstance(value, bool):
            value = parse_boolean(str(value))
        elif category is TypeCategory.UUID and isinstance(value, str) and looks_like_uuid(value.strip()):
            return self._equals(descriptor, col == cast(untyped(value.strip()), Uuid), value.strip())

        if isinstance(value, bool):
            return self._equals(descriptor, col == literal(value, Boolean()), value)
        return self._equals(descriptor, col == untyped(value), value)

    def _equals(self, descriptor: ColumnDescriptor, clause: ColumnElement[bool], value: Any) -> SearchCondition:
        return SearchCondition(
            column=descriptor.name,
            clause=clause,
            value=value,
            mode=MatchMode.EQUALS,
            category=descriptor.category,
        )

    def _contains(self, descriptor: ColumnDescriptor, expr: ColumnElement, text: str) -> SearchCondition:
        return SearchCondition(
            column=descriptor.name,
            clause=expr.icontains(text, autoescape=True),
            value=text,
            mode=MatchMode.CONTAINS,
            category=descriptor.category,
        )
