"""
Composition root.

Builds the long-lived engine components once and exposes them to routes
through app.state and FastAPI dependencies.
"""

from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from shared.config.settings import Settings
from shared.infrastructure.correlation import client_ip_from, get_request_id
from shared.infrastructure.db import get_db
from shared.security.auth import Principal

from registro_api.services.audit import AuditContext, AuditRecorder, build_normalizer
from registro_api.services.crud import ConditionBuilder, ForeignKeyEnricher, TableExecutor
from registro_api.services.schema import SchemaRegistry, build_catalog_reader


@dataclass
class AppState:
    """Process-lifetime components shared by every request."""

    settings: Settings
    registry: SchemaRegistry
    builder: ConditionBuilder
    enricher: ForeignKeyEnricher
    recorder: AuditRecorder

    def executor(self, db: Session) -> TableExecutor:
        return TableExecutor(
            db,
            self.registry,
            self.builder,
            self.enricher,
            self.recorder,
            schema_name=self.settings.schema_name,
        )


def build_app_state(engine: Engine, session_factory: sessionmaker, settings: Settings) -> AppState:
    registry = SchemaRegistry(build_catalog_reader(engine, settings))
    return AppState(
        settings=settings,
        registry=registry,
        builder=ConditionBuilder(),
        enricher=ForeignKeyEnricher(registry, settings.entity_tables, settings.schema_name),
        recorder=AuditRecorder(session_factory, build_normalizer(settings.audit_fold_diacritics)),
    )


# =============================================================================
# Dependencies
# =============================================================================


def get_app_state(request: Request) -> AppState:
    return request.app.state.registro


def get_executor(
    state: AppState = Depends(get_app_state),
    db: Session = Depends(get_db),
) -> TableExecutor:
    return state.executor(db)


def audit_context_for(request: Request, principal: Principal | None) -> AuditContext:
    return AuditContext(
        principal=principal,
        source_ip=client_ip_from(request),
        user_agent=request.headers.get("User-Agent"),
        request_id=get_request_id() or request.headers.get("X-Request-ID"),
    )
