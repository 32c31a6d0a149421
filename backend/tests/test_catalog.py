"""
Tests for navigation categories, enum options and health endpoints.
"""

import pytest

from shared.utils.exceptions import NotFoundError

from registro_api.models import TableCategory
from registro_api.services.catalog_nav import list_categories, list_category_tables


@pytest.fixture
def seed_categories(db_session):
    """Two categories; one inactive table row."""
    rows = [
        TableCategory(
            category_name="entidades", category_display_name="Entidades", category_icon="E",
            table_name="mutuales", table_display_name="Mutuales", table_order=2,
        ),
        TableCategory(
            category_name="entidades", category_display_name="Entidades", category_icon="E",
            table_name="cooperativas", table_display_name="Cooperativas", table_order=1,
        ),
        TableCategory(
            category_name="administracion", category_display_name="Administración",
            table_name="legajos", table_display_name="Legajos", table_order=1,
        ),
        TableCategory(
            category_name="administracion", category_display_name="Administración",
            table_name="socios_sin_clave", table_order=2, is_active=False,
        ),
        TableCategory(
            category_name="archivo", category_display_name="Archivo",
            table_name="historico", table_order=1, is_active=False,
        ),
    ]
    db_session.add_all(rows)
    db_session.commit()


class TestCategories:
    def test_one_entry_per_active_category(self, db_session, seed_categories):
        categories = list_categories(db_session)
        assert [c["category_name"] for c in categories] == ["administracion", "entidades"]
        assert categories[1]["category_display_name"] == "Entidades"

    def test_tables_in_order(self, db_session, seed_categories):
        tables = list_category_tables(db_session, "entidades")
        assert [t["table_name"] for t in tables] == ["cooperativas", "mutuales"]

    def test_inactive_tables_are_hidden(self, db_session, seed_categories):
        tables = list_category_tables(db_session, "administracion")
        assert [t["table_name"] for t in tables] == ["legajos"]

    def test_unknown_category(self, db_session, seed_categories):
        with pytest.raises(NotFoundError):
            list_category_tables(db_session, "archivo")

    def test_endpoints(self, client, seed_categories):
        data = client.get("/api/categories").json()
        assert data["success"] is True
        assert data["total"] == 2

        response = client.get("/api/categories/entidades/tables")
        assert response.status_code == 200
        assert response.json()["category"] == "entidades"
        assert response.json()["total"] == 2

        response = client.get("/api/categories/no_existe/tables")
        assert response.status_code == 404
        assert response.json()["success"] is False


class TestEnumOptions:
    def test_all_configured_enums(self, client, app_state):
        data = client.get("/api/enum-options").json()
        assert data["success"] is True
        assert set(data["data"]) == set(app_state.settings.enum_option_names)
        # SQLite has no named enum types
        assert all(values == [] for values in data["data"].values())

    def test_unknown_enum_is_empty(self, client):
        data = client.get("/api/enum-options/no_existe").json()
        assert data == {"success": True, "data": []}


class TestHealthEndpoints:
    """Test health check API endpoints."""

    def test_health_check(self, client):
        """Basic health check should return healthy status."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "registro-api"
        assert data["database"] == "connected"

    def test_detailed_health_reports_schema_cache(self, client):
        client.get("/api/tables/legajos/schema")
        data = client.get("/api/health/detailed").json()
        assert data["status"] == "healthy"
        assert data["catalog"]["source"] == "inspector"
        assert "legajos" in data["catalog"]["cached_tables"]

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"
