"""
Shared Pydantic schemas used across the application.
"""

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


# =============================================================================
# Common Types
# =============================================================================


class ErrorResponse(BaseModel):
    """Body of every error response."""

    success: Literal[False] = False
    message: str


# =============================================================================
# Dynamic table requests
# =============================================================================


class SearchCriteria(BaseModel):
    """Single-column equality criterion for update/delete."""

    field: str | None = None
    value: Any = None


class UpdateRequest(BaseModel):
    """Body of PUT /api/tables/{table}/update."""

    search_criteria: SearchCriteria | None = Field(default=None, alias="searchCriteria")
    update_data: dict[str, Any] = Field(default_factory=dict, alias="updateData")

    class Config:
        populate_by_name = True


class DeleteRequest(BaseModel):
    """Body of DELETE /api/tables/{table}/delete."""

    search_criteria: SearchCriteria | None = Field(default=None, alias="searchCriteria")

    class Config:
        populate_by_name = True


# =============================================================================
# Audit
# =============================================================================


def _json_or_none(text: str | None) -> Any:
    return json.loads(text) if text else None


class AuditEntryOutput(BaseModel):
    """Audit log entry output."""

    id: int
    actor_id: str | None = None
    actor_email: str | None = None
    actor_display_name: str | None = None
    action: str
    table_name: str
    record_id: str | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    changes: dict[str, Any] | None = None
    occurred_at: datetime
    source_ip: str | None = None
    user_agent: str | None = None
    prev_hash: str | None = None
    entry_hash: str

    @classmethod
    def from_entry(cls, entry: Any) -> "AuditEntryOutput":
        """Build from an AuditLog row, decoding the JSON snapshots."""
        return cls(
            id=entry.id,
            actor_id=entry.actor_id,
            actor_email=entry.actor_email,
            actor_display_name=entry.actor_display_name,
            action=entry.action,
            table_name=entry.table_name,
            record_id=entry.record_id,
            before=_json_or_none(entry.before_snapshot),
            after=_json_or_none(entry.after_snapshot),
            changes=_json_or_none(entry.changes),
            occurred_at=entry.occurred_at,
            source_ip=entry.source_ip,
            user_agent=entry.user_agent,
            prev_hash=entry.prev_hash,
            entry_hash=entry.entry_hash,
        )


class AuditListResponse(BaseModel):
    success: bool = True
    data: list[AuditEntryOutput]
    total: int
    limit: int
    offset: int


class ChainVerificationOutput(BaseModel):
    success: bool = True
    valid: bool
    checked: int
    first_invalid_id: int | None = None
    reason: str | None = None
