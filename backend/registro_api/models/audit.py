"""
Audit Log Model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK


class AuditLog(Base):
    """
    Immutable record of one create/update/delete on a dynamic table.
    Stores who did what, when, and the before/after state.

    Rows are append-only: the ORM refuses to flush updates or deletes.
    Each row is chained to the previous one through prev_hash/entry_hash.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    # Who made the change
    actor_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    actor_email: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    actor_display_name: Mapped[Optional[str]] = mapped_column(String(255))

    # What was changed
    action: Mapped[str] = mapped_column(String(16), nullable=False)  # CREATE, UPDATE, DELETE
    table_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    record_id: Mapped[Optional[str]] = mapped_column(Text)

    # Change details (JSON)
    before_snapshot: Mapped[Optional[str]] = mapped_column(Text)  # JSON of previous state
    after_snapshot: Mapped[Optional[str]] = mapped_column(Text)  # JSON of new state
    changes: Mapped[Optional[str]] = mapped_column(Text)  # JSON of changed fields (UPDATE)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    # Request metadata
    source_ip: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(Text)
    session_context: Mapped[Optional[str]] = mapped_column(Text)  # JSON (request id, token id)

    # Hash chain
    prev_hash: Mapped[Optional[str]] = mapped_column(String(64))
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        Index("ix_audit_log_table_action", "table_name", "action"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, {self.action} {self.table_name}:{self.record_id})>"


class AuditLogImmutableError(RuntimeError):
    """Raised when code tries to modify or remove an audit entry."""


@event.listens_for(AuditLog, "before_update")
def _refuse_update(mapper, connection, target: AuditLog) -> None:
    raise AuditLogImmutableError(f"Audit entry {target.id} is append-only")


@event.listens_for(AuditLog, "before_delete")
def _refuse_delete(mapper, connection, target: AuditLog) -> None:
    raise AuditLogImmutableError(f"Audit entry {target.id} is append-only")
