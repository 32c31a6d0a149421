"""
CSV export of dynamic-table records.
"""

import csv
import io
from collections.abc import Iterable
from typing import Any

from registro_api.services.schema import TableSchema

UTF8_BOM = "\ufeff"
DELIMITER = ";"


def export_columns(schema: TableSchema, rows: list[dict[str, Any]], leading: str | None) -> list[str]:
    """
    Schema columns in ordinal order with the preferred leading column first,
    then any extra keys present in the rows (enrichment aliases).
    Keys starting with "_" are bookkeeping and never exported.
    """
    columns = schema.column_names
    if leading and leading in columns:
        columns = [leading] + [c for c in columns if c != leading]

    seen = set(columns)
    for row in rows:
        for key in row:
            if key not in seen and not key.startswith("_"):
                columns.append(key)
                seen.add(key)
    return columns


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Sí" if value else "No"
    return value


def export_csv(schema: TableSchema, rows: Iterable[dict[str, Any]], leading: str | None = "Matricula") -> str:
    """Semicolon-delimited CSV with a UTF-8 BOM, ready for spreadsheet tools."""
    rows = list(rows)
    columns = export_columns(schema, rows, leading)

    buffer = io.StringIO()
    buffer.write(UTF8_BOM)
    writer = csv.writer(buffer, delimiter=DELIMITER, lineterminator="\r\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(row.get(col)) for col in columns])
    return buffer.getvalue()
