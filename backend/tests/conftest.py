"""
Pytest configuration and fixtures for backend tests.

Every test gets its own in-memory SQLite store holding the app-owned tables
plus a handful of dynamic tables created with raw DDL, the way an external
tool would create them.
"""

import os

# Settings are read at import time; point them at SQLite before anything loads
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENVIRONMENT", "test")

import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shared.config.constants import Roles
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import Principal

from registro_api.core.state import build_app_state, get_app_state
from registro_api.main import app
from registro_api.models import Base
from registro_api.services.audit import AuditContext


DYNAMIC_TABLES_DDL = [
    """
    CREATE TABLE cooperativas (
        "Matricula" INTEGER NOT NULL PRIMARY KEY,
        "Cooperativa" TEXT NOT NULL,
        "Localidad" TEXT
    )
    """,
    """
    CREATE TABLE mutuales (
        "Matricula" INTEGER NOT NULL PRIMARY KEY,
        "Mutual" TEXT NOT NULL,
        "Localidad" TEXT
    )
    """,
    """
    CREATE TABLE legajos (
        "Legajo" INTEGER NOT NULL PRIMARY KEY,
        "Matricula" INTEGER,
        "Titular" VARCHAR(120),
        "Activo" BOOLEAN,
        "Fecha" DATE,
        "Monto" NUMERIC(12, 2)
    )
    """,
    """
    CREATE TABLE aportes_mutuales (
        "id" INTEGER PRIMARY KEY,
        "Matricula" INTEGER,
        "Importe" NUMERIC(12, 2)
    )
    """,
    """
    CREATE TABLE cuotas_coop (
        "id" INTEGER PRIMARY KEY,
        "Matricula" INTEGER REFERENCES mutuales ("Matricula"),
        "Periodo" TEXT
    )
    """,
    """
    CREATE TABLE padron_legajos (
        "Legajo" TEXT NOT NULL PRIMARY KEY,
        "Cooperativa" TEXT,
        "Estado" TEXT DEFAULT 'pendiente'
    )
    """,
    """
    CREATE TABLE socios_sin_clave (
        "Nombre" TEXT,
        "id_socio" INTEGER,
        "Cuota" NUMERIC(10, 2)
    )
    """,
]

SEED_SQL = [
    """
    INSERT INTO cooperativas ("Matricula", "Cooperativa", "Localidad") VALUES
        (101, 'Cooperativa Unión Agrícola', 'Rafaela'),
        (102, 'Cooperativa El Ceibo', 'Paraná'),
        (103, 'Coop 100% Láctea', 'Sunchales')
    """,
    """
    INSERT INTO mutuales ("Matricula", "Mutual", "Localidad") VALUES
        (201, 'Mutual Docente', 'Santa Fe')
    """,
    """
    INSERT INTO legajos ("Legajo", "Matricula", "Titular", "Activo", "Fecha", "Monto") VALUES
        (1, 101, 'Ana Pérez', 1, '2024-01-15', 1500),
        (2, 101, 'Juan Gómez', 0, '2024-03-10', 200),
        (3, 102, 'María López', 1, '2024-06-30', 42),
        (4, 999, 'Sin Entidad', 1, '2023-12-31', 10)
    """,
    """
    INSERT INTO aportes_mutuales ("id", "Matricula", "Importe") VALUES (1, 201, 300)
    """,
    """
    INSERT INTO socios_sin_clave ("Nombre", "id_socio", "Cuota") VALUES
        ('Pedro', 7, 10),
        ('Pedro', 8, 10),
        ('Lucía', 9, 12)
    """,
]


@pytest.fixture(scope="function")
def engine():
    """
    Fresh in-memory store per test.
    StaticPool keeps every session on the same connection (and database).
    """
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    with test_engine.begin() as conn:
        for statement in DYNAMIC_TABLES_DDL + SEED_SQL:
            conn.execute(text(statement))

    yield test_engine

    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    """Session used by route handlers and by tests that inspect the store."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app_state(engine, session_factory):
    return build_app_state(engine, session_factory, settings)


@pytest.fixture
def executor(app_state, db_session):
    return app_state.executor(db_session)


@pytest.fixture
def audit_ctx():
    """Audit context of an editor calling from a known address."""
    principal = Principal(
        id="u-editor",
        email="editor@test.com",
        display_name="Test Editor",
        role=Roles.EDITOR,
        token_id="tok-1",
    )
    return AuditContext(principal=principal, source_ip="10.0.0.5", user_agent="pytest", request_id="req-1")


@pytest.fixture(scope="function")
def client(db_session, app_state):
    """
    Create a test client with database session and app state overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_app_state] = lambda: app_state

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def make_token(role: str, sub: str = "u-1", email: str = "user@test.com", **claims) -> str:
    """HS256 token as the external auth service would issue it."""
    payload = {
        "sub": sub,
        "email": email,
        "name": f"Test {role.title()}",
        "role": role,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        "jti": uuid.uuid4().hex,
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token(Roles.ADMIN, sub='u-admin', email='admin@test.com')}"}


@pytest.fixture
def editor_headers():
    return {"Authorization": f"Bearer {make_token(Roles.EDITOR, sub='u-editor', email='editor@test.com')}"}


@pytest.fixture
def viewer_headers():
    return {"Authorization": f"Bearer {make_token(Roles.VIEWER, sub='u-viewer', email='viewer@test.com')}"}


@pytest.fixture
def token_factory():
    """Build tokens with arbitrary claims (expired, other issuer, ...)."""
    return make_token
