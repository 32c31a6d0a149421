"""
Audit log endpoints (ADMIN only).
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.constants import AUDIT_ROLES, AuditAction, Limits
from shared.infrastructure.db import get_db, translate_db_error
from shared.security.auth import Principal, RequireRole
from shared.utils.exceptions import ValidationError
from shared.utils.schemas import AuditEntryOutput, AuditListResponse, ChainVerificationOutput

from registro_api.services.audit import AuditFilters, AuditQueryService, verify_chain

router = APIRouter(prefix="/api/audit", tags=["audit"])

require_admin = RequireRole(*sorted(AUDIT_ROLES))


@router.get("", response_model=AuditListResponse)
def list_audit_entries(
    actor_email: str | None = Query(default=None, alias="actorEmail"),
    actor_id: str | None = Query(default=None, alias="actorId"),
    table_name: str | None = Query(default=None, alias="tableName"),
    action: str | None = None,
    date_from: date | None = Query(default=None, alias="dateFrom"),
    date_to: date | None = Query(default=None, alias="dateTo"),
    limit: int = Query(default=Limits.AUDIT_DEFAULT_LIMIT, ge=1, le=Limits.AUDIT_MAX_LIMIT),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
) -> AuditListResponse:
    """
    Audit entries, newest first.

    Filters:
    - actorEmail / actorId: who made the change
    - tableName: affected table
    - action: CREATE, UPDATE or DELETE
    - dateFrom / dateTo: inclusive day range on occurred_at
    """
    if action and action.upper() not in AuditAction.ALL:
        raise ValidationError(f"Acción inválida: {action}", action=action)
    if date_from and date_to and date_from > date_to:
        raise ValidationError("La fecha inicial no puede ser posterior a la final")

    filters = AuditFilters(
        actor_email=actor_email,
        actor_id=actor_id,
        table_name=table_name,
        action=action,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    try:
        entries, total = AuditQueryService(db).list_entries(filters)
    except SQLAlchemyError as exc:
        raise translate_db_error(exc, "consulta de auditoría") from exc

    return AuditListResponse(
        data=[AuditEntryOutput.from_entry(entry) for entry in entries],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/verify", response_model=ChainVerificationOutput)
def verify_audit_chain(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
) -> ChainVerificationOutput:
    """Recompute the hash chain and report the first broken entry."""
    try:
        result = verify_chain(db)
    except SQLAlchemyError as exc:
        raise translate_db_error(exc, "verificación de auditoría") from exc

    return ChainVerificationOutput(
        valid=result.valid,
        checked=result.checked,
        first_invalid_id=result.first_invalid_id,
        reason=result.reason,
    )
