"""
Tests for the generic CRUD executor against dynamic tables.
"""

import pytest
from sqlalchemy import select, text

from shared.config.constants import AuditAction
from shared.utils.exceptions import (
    ConflictError,
    RecordNotFoundError,
    TableNotFoundError,
    UnknownFieldError,
    ValidationError,
)

from registro_api.models import AuditLog
from registro_api.services.crud import MatchMode


def _audit_entries(db_session):
    return db_session.scalars(select(AuditLog).order_by(AuditLog.id)).all()


# =============================================================================
# Metadata
# =============================================================================


class TestMetadata:
    def test_table_names(self, executor):
        names = executor.table_names()
        assert "legajos" in names
        assert "audit_log" not in names

    def test_fields(self, executor):
        fields = executor.fields("legajos")
        assert fields[0] == {"name": "Legajo", "type": "INTEGER", "category": "numeric", "isPrimaryKey": True}
        assert [f["name"] for f in fields if f["isPrimaryKey"]] == ["Legajo"]

    @pytest.mark.parametrize("name", ["no_existe", "", "x" * 64, "tabla\x00"])
    def test_unknown_or_invalid_table(self, executor, name):
        with pytest.raises(TableNotFoundError):
            executor.schema(name)


# =============================================================================
# Reads
# =============================================================================


class TestRead:
    def test_rows_ordered_by_primary_key_with_bookkeeping(self, executor):
        result = executor.read("cooperativas")
        assert result.total == 3
        assert [r["Matricula"] for r in result.rows] == [101, 102, 103]

        first = result.rows[0]
        assert list(first)[0] == "_primaryKey"
        assert first["_primaryKey"] == 101
        assert [r["_rowIndex"] for r in result.rows] == [1, 2, 3]

    def test_entity_tables_are_not_enriched(self, executor):
        result = executor.read("cooperativas")
        assert result.enriched is False
        assert "entidad_nombre" not in result.rows[0]

    def test_enriched_read_joins_entity(self, executor):
        result = executor.read("legajos")
        assert result.enriched is True
        first = result.rows[0]
        assert first["entidad_nombre"] == "Cooperativa Unión Agrícola"
        assert first["entidad_localidad"] == "Rafaela"

    def test_enrichment_is_an_inner_join(self, executor):
        # Legajo 4 references matricula 999, which no cooperativa has
        enriched = executor.read("legajos")
        plain = executor.read("legajos", enrich=False)
        assert [r["Legajo"] for r in enriched.rows] == [1, 2, 3]
        assert [r["Legajo"] for r in plain.rows] == [1, 2, 3, 4]

    def test_inferred_primary_key_orders_rows(self, executor):
        result = executor.read("socios_sin_clave")
        assert result.primary_key == "id_socio"
        assert [r["_primaryKey"] for r in result.rows] == [7, 8, 9]


class TestSearch:
    def test_numeric_equality(self, executor):
        result = executor.search("legajos", "Matricula", "101", enrich=False)
        assert result.condition.mode is MatchMode.EQUALS
        assert [r["Legajo"] for r in result.rows] == [1, 2]

    def test_numeric_column_with_text_falls_back_to_substring(self, executor):
        result = executor.search("legajos", "Monto", "150", enrich=False)
        assert result.condition.mode is MatchMode.CONTAINS
        assert [r["Legajo"] for r in result.rows] == [1]

    def test_text_is_case_insensitive(self, executor):
        result = executor.search("cooperativas", "Cooperativa", "UNI")
        assert [r["Matricula"] for r in result.rows] == [101]

    def test_like_wildcards_match_literally(self, executor):
        result = executor.search("cooperativas", "Cooperativa", "%")
        assert [r["Matricula"] for r in result.rows] == [103]

    def test_boolean_search(self, executor):
        result = executor.search("legajos", "Activo", "Sí", enrich=False)
        assert [r["Legajo"] for r in result.rows] == [1, 3, 4]
        result = executor.search("legajos", "Activo", "no", enrich=False)
        assert [r["Legajo"] for r in result.rows] == [2]

    def test_temporal_text_is_substring(self, executor):
        result = executor.search("legajos", "Fecha", "2024-0", enrich=False)
        assert [r["Legajo"] for r in result.rows] == [1, 2, 3]

    def test_date_range_is_inclusive(self, executor):
        result = executor.search(
            "legajos", "Fecha", date_from="2024-01-15", date_to="2024-06-30", enrich=False
        )
        assert result.condition.mode is MatchMode.RANGE
        assert [r["Legajo"] for r in result.rows] == [1, 2, 3]

    def test_date_range_takes_precedence_over_text(self, executor):
        result = executor.search(
            "legajos", "Fecha", text="zzz", date_from="2024-03-01", enrich=False
        )
        assert [r["Legajo"] for r in result.rows] == [2, 3]

    def test_search_is_enriched(self, executor):
        result = executor.search("legajos", "Titular", "maría")
        assert len(result.rows) == 1
        assert result.rows[0]["entidad_nombre"] == "Cooperativa El Ceibo"

    def test_empty_text_behaves_as_read(self, executor):
        result = executor.search("legajos", "Titular", "   ", enrich=False)
        assert result.condition is None
        assert result.total == 4

    def test_unknown_field_is_rejected(self, executor):
        with pytest.raises(UnknownFieldError) as exc_info:
            executor.search("legajos", "Apellido", "x")
        assert exc_info.value.status_code == 400

    def test_text_without_field(self, executor):
        with pytest.raises(ValidationError):
            executor.search("legajos", None, "Ana")

    def test_no_matches(self, executor):
        assert executor.search("legajos", "Titular", "inexistente").rows == []


# =============================================================================
# Mutations
# =============================================================================


class TestCreate:
    def test_create_returns_row_and_records_audit(self, executor, db_session, audit_ctx):
        result = executor.create(
            "legajos",
            {"Legajo": 10, "Matricula": 102, "Titular": "Nuevo Socio", "Activo": True, "Fecha": "2024-07-01"},
            audit_ctx,
        )
        assert result.primary_key == "Legajo"
        assert result.primary_key_value == 10
        assert result.record["Titular"] == "Nuevo Socio"

        entries = _audit_entries(db_session)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == AuditAction.CREATE
        assert entry.table_name == "legajos"
        assert entry.record_id == "10"
        assert entry.before_snapshot is None
        assert entry.after_snapshot is not None
        assert entry.actor_email == "editor@test.com"
        assert entry.source_ip == "10.0.0.5"

    def test_display_fields_are_ignored(self, executor, audit_ctx):
        result = executor.create(
            "cooperativas",
            {
                "Matricula": 104,
                "Cooperativa": "Cooperativa Nueva",
                "_primaryKey": None,
                "_rowIndex": 9,
                "entidad_nombre": "x",
            },
            audit_ctx,
        )
        assert result.primary_key_value == 104
        assert "entidad_nombre" not in result.record

    def test_blank_values_fall_back_to_column_defaults(self, executor, audit_ctx):
        result = executor.create("aportes_mutuales", {"Matricula": 201, "Importe": ""}, audit_ctx)
        assert result.primary_key_value is not None
        assert result.record["Importe"] is None

    def test_unknown_field(self, executor, audit_ctx):
        with pytest.raises(UnknownFieldError):
            executor.create("cooperativas", {"Matricula": 105, "Apodo": "x"}, audit_ctx)

    def test_missing_required_primary_key(self, executor, audit_ctx):
        with pytest.raises(ValidationError) as exc_info:
            executor.create("legajos", {"Titular": "Sin legajo"}, audit_ctx)
        assert "Legajo" in exc_info.value.detail

    def test_empty_payload(self, executor, audit_ctx):
        with pytest.raises(ValidationError):
            executor.create("legajos", {"Titular": None}, audit_ctx)

    def test_duplicate_key_is_conflict(self, executor, db_session, audit_ctx):
        with pytest.raises(ConflictError) as exc_info:
            executor.create("cooperativas", {"Matricula": 101, "Cooperativa": "Duplicada"}, audit_ctx)
        assert exc_info.value.status_code == 409
        assert _audit_entries(db_session) == []
        # The session is usable after the failed insert
        assert executor.read("cooperativas").total == 3


class TestUpdate:
    def test_update_single_row(self, executor, db_session, audit_ctx):
        result = executor.update("legajos", "Legajo", "2", {"Titular": "Juan G.", "entidad_nombre": "x"}, audit_ctx)
        assert result.primary_key_value == 2
        assert result.record["Titular"] == "Juan G."
        assert result.record["_primaryKey"] == 2

        entry = _audit_entries(db_session)[0]
        assert entry.action == AuditAction.UPDATE
        assert entry.record_id == "2"
        assert '"Juan Gómez"' in entry.before_snapshot
        assert '"Juan G."' in entry.after_snapshot
        assert "Titular" in entry.changes
        assert "Matricula" not in entry.changes

    def test_no_match(self, executor, audit_ctx):
        with pytest.raises(RecordNotFoundError) as exc_info:
            executor.update("legajos", "Legajo", 999, {"Titular": "x"}, audit_ctx)
        assert exc_info.value.status_code == 404

    def test_multiple_matches_are_rejected(self, executor, db_session, audit_ctx):
        with pytest.raises(ValidationError):
            executor.update("socios_sin_clave", "Nombre", "Pedro", {"Cuota": 99}, audit_ctx)

        cuotas = db_session.execute(
            text('SELECT "Cuota" FROM socios_sin_clave WHERE "Nombre" = :n'), {"n": "Pedro"}
        ).scalars().all()
        assert cuotas == [10, 10]
        assert _audit_entries(db_session) == []

    @pytest.mark.parametrize("field,value", [(None, 1), ("", 1), ("Legajo", None), ("Legajo", "  ")])
    def test_invalid_criterion(self, executor, audit_ctx, field, value):
        with pytest.raises(ValidationError) as exc_info:
            executor.update("legajos", field, value, {"Titular": "x"}, audit_ctx)
        assert exc_info.value.detail == "Se requiere criterio de búsqueda válido"

    def test_unknown_criterion_field(self, executor, audit_ctx):
        with pytest.raises(UnknownFieldError):
            executor.update("legajos", "Apellido", "x", {"Titular": "x"}, audit_ctx)

    def test_bad_numeric_criterion(self, executor, audit_ctx):
        with pytest.raises(ValidationError):
            executor.update("legajos", "Legajo", "dos", {"Titular": "x"}, audit_ctx)

    def test_empty_change_set(self, executor, audit_ctx):
        with pytest.raises(ValidationError):
            executor.update("legajos", "Legajo", 1, {"_rowIndex": 1}, audit_ctx)


class TestDelete:
    def test_delete_returns_pre_image(self, executor, db_session, audit_ctx):
        result = executor.delete("legajos", "Legajo", 3, audit_ctx)
        assert result.record["Titular"] == "María López"
        assert executor.read("legajos", enrich=False).total == 3

        entry = _audit_entries(db_session)[0]
        assert entry.action == AuditAction.DELETE
        assert entry.after_snapshot is None
        assert '"María López"' in entry.before_snapshot

    def test_no_match(self, executor, db_session, audit_ctx):
        with pytest.raises(RecordNotFoundError):
            executor.delete("legajos", "Legajo", 999, audit_ctx)
        assert _audit_entries(db_session) == []

    def test_multiple_matches_are_rejected(self, executor, audit_ctx):
        with pytest.raises(ValidationError):
            executor.delete("socios_sin_clave", "Nombre", "Pedro", audit_ctx)
        assert executor.read("socios_sin_clave").total == 3
