"""
Schema Registry.

Process-lifetime cache of TableSchema objects, populated lazily from a
CatalogReader. Built once by the application lifespan and handed to every
request through app.state; there is no module-level instance.

Invariants:
    - Entries are never mutated; a schema is stored once and only replaced
      by clear()
    - Concurrent misses for the same table may introspect twice; the first
      stored value wins and every caller receives that value
    - No TTL: schema changes in the store require clear() or a restart

Example:
    >>> registry = SchemaRegistry(InspectorCatalogReader(engine))
    >>> registry.get("cooperativas").primary_key
    'Matricula'
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

from shared.config.logging import get_logger
from shared.utils.exceptions import AppException, NotFoundError, SchemaError

from .catalog import CatalogReader
from .types import TableSchema

logger = get_logger(__name__)


class SchemaRegistry:
    """Thread-safe, lazily populated table-schema cache.

    Lookups take the lock only to read or store the dict entry; catalog
    introspection runs outside it so a slow table never blocks others.
    """

    def __init__(self, reader: CatalogReader) -> None:
        self._reader = reader
        self._schemas: dict[str, TableSchema] = {}
        self._lock = threading.Lock()

    @property
    def reader(self) -> CatalogReader:
        return self._reader

    def get(self, table_name: str) -> TableSchema:
        """Schema for a table, introspecting it on first use.

        Raises:
            TableNotFoundError: table absent or hidden (not cached)
            SchemaError: table reports no columns (not cached)
        """
        with self._lock:
            cached = self._schemas.get(table_name)
        if cached is not None:
            return cached

        schema = self._reader.describe(table_name)

        with self._lock:
            stored = self._schemas.setdefault(table_name, schema)
        if stored is schema:
            logger.info(
                "Schema cached",
                table=table_name,
                primary_key=schema.primary_key,
                columns=len(schema.columns),
            )
        return stored

    def exists(self, table_name: str) -> bool:
        """
        Whether the table resolves; used to guard optional joins.

        Store failures (TransientError, DatabaseError) propagate.
        """
        try:
            self.get(table_name)
        except (NotFoundError, SchemaError):
            return False
        return True

    def warm(self, table_names: Iterable[str]) -> list[str]:
        """Pre-populate the cache. Returns the tables that could not be resolved."""
        failed = []
        for name in table_names:
            try:
                self.get(name)
            except AppException as exc:
                logger.warning("Schema warm-up failed", table=name, error=exc.detail)
                failed.append(name)
        return failed

    def cached_tables(self) -> list[str]:
        with self._lock:
            return sorted(self._schemas)

    def clear(self) -> None:
        """Drop every cached schema (tests and CLI only)."""
        with self._lock:
            self._schemas.clear()
