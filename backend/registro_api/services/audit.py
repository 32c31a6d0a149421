"""
Audit logging service.
Records every create/update/delete on a dynamic table with before/after
snapshots, chained by SHA-256 hashes for tamper detection.

Entries are written in their own session after the mutation has committed.
A failed audit write is logged and never fails the mutation.
"""

from __future__ import annotations

import hashlib
import json
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shared.config.constants import AuditAction, Limits
from shared.config.logging import audit_logger as logger, mask_email
from shared.security.auth import Principal
from shared.utils.validators import fold_diacritics

from registro_api.models import AuditLog

FieldNameNormalizer = Callable[[str], str]

GENESIS_HASH = "genesis"

# Key for pg_advisory_xact_lock: serializes appends to the hash chain across processes
AUDIT_CHAIN_LOCK_ID = 0x52454749  # "REGI"


def keep_field_name(name: str) -> str:
    return name


def build_normalizer(fold: bool) -> FieldNameNormalizer:
    return fold_diacritics if fold else keep_field_name


@dataclass(frozen=True)
class AuditContext:
    """Who is mutating, and from where."""

    principal: Optional[Principal] = None
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None

    def session_context(self) -> dict[str, Any]:
        context = {"request_id": self.request_id}
        if self.principal is not None:
            context["token_id"] = self.principal.token_id
            context["role"] = self.principal.role
        return context


def _dump(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(jsonable_encoder(value), ensure_ascii=False)


def _canonical_time(moment: datetime) -> str:
    """UTC, naive, microseconds: stable across stores that drop tzinfo."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.isoformat(timespec="microseconds")


def compute_entry_hash(entry: AuditLog, prev_hash: str) -> str:
    """Compute SHA-256 hash of an entry chained to the previous one."""
    payload = (
        f"{prev_hash}:"
        f"{_canonical_time(entry.occurred_at)}:"
        f"{entry.action}:"
        f"{entry.actor_id or ''}:"
        f"{entry.actor_email or ''}:"
        f"{entry.table_name}:"
        f"{entry.record_id or ''}:"
        f"{entry.before_snapshot or ''}:"
        f"{entry.after_snapshot or ''}"
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_changes(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Fields whose value differs between the two snapshots."""
    old = jsonable_encoder(before)
    new = jsonable_encoder(after)
    changes = {}
    for key in list(old) + [k for k in new if k not in old]:
        if old.get(key) != new.get(key):
            changes[key] = {"old": old.get(key), "new": new.get(key)}
    return changes


class AuditRecorder:
    """
    Appends audit entries.

    Args:
        session_factory: creates the recorder's own sessions
        normalizer: applied to every field name of both snapshots
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        normalizer: FieldNameNormalizer = fold_diacritics,
    ) -> None:
        self._session_factory = session_factory
        self._normalizer = normalizer
        self._append_lock = threading.Lock()

    def normalize(self, snapshot: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
        """Rename snapshot keys; on collision the later column wins."""
        if snapshot is None:
            return None
        return {self._normalizer(key): value for key, value in snapshot.items()}

    def record(
        self,
        action: str,
        table_name: str,
        record_id: Any,
        before: Optional[dict[str, Any]],
        after: Optional[dict[str, Any]],
        ctx: AuditContext,
    ) -> Optional[AuditLog]:
        """
        Write one audit entry.

        Returns:
            The stored entry, or None when the write failed.

        Raises:
            ValueError: snapshots do not match the action (caller bug)
        """
        _check_snapshots(action, before, after)

        before = self.normalize(before)
        after = self.normalize(after)
        principal = ctx.principal

        try:
            entry = AuditLog(
                actor_id=principal.id if principal else None,
                actor_email=principal.email if principal else None,
                actor_display_name=principal.display_name if principal else None,
                action=action,
                table_name=table_name,
                record_id=None if record_id is None else str(record_id),
                before_snapshot=_dump(before),
                after_snapshot=_dump(after),
                changes=_dump(compute_changes(before, after)) if action == AuditAction.UPDATE else None,
                occurred_at=datetime.now(timezone.utc),
                source_ip=ctx.source_ip,
                user_agent=ctx.user_agent,
                session_context=_dump(ctx.session_context()),
            )
            self._append(entry)
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            logger.error(
                "Audit write failed",
                action=action,
                table=table_name,
                record_id=record_id,
                actor=mask_email(principal.email) if principal else None,
                error=str(exc),
                exc_info=True,
            )
            return None

        logger.info(
            "Audit entry recorded",
            audit_id=entry.id,
            action=action,
            table=table_name,
            record_id=entry.record_id,
        )
        return entry

    def _append(self, entry: AuditLog) -> None:
        with self._append_lock, self._session_factory() as session:
            if session.get_bind().dialect.name == "postgresql":
                session.execute(select(func.pg_advisory_xact_lock(AUDIT_CHAIN_LOCK_ID)))
            prev_hash = session.scalars(
                select(AuditLog.entry_hash).order_by(AuditLog.id.desc()).limit(1)
            ).first()
            entry.prev_hash = prev_hash or GENESIS_HASH
            entry.entry_hash = compute_entry_hash(entry, entry.prev_hash)
            session.add(entry)
            session.commit()
            session.refresh(entry)


def _check_snapshots(action: str, before: Any, after: Any) -> None:
    expected = {
        AuditAction.CREATE: (False, True),
        AuditAction.UPDATE: (True, True),
        AuditAction.DELETE: (True, False),
    }
    if action not in expected:
        raise ValueError(f"Unknown audit action: {action}")
    has_before, has_after = expected[action]
    if (before is not None) != has_before or (after is not None) != has_after:
        raise ValueError(f"{action} audit entry with before={before is not None}, after={after is not None}")


# =============================================================================
# Chain verification
# =============================================================================


@dataclass(frozen=True)
class ChainVerification:
    valid: bool
    checked: int
    first_invalid_id: Optional[int] = None
    reason: Optional[str] = None


def verify_chain(db: Session, batch_size: int = 500) -> ChainVerification:
    """
    Walk the audit log in id order and recompute every link.

    Returns the first entry whose prev_hash or entry_hash does not match.
    """
    prev_hash = GENESIS_HASH
    checked = 0
    last_id = 0

    while True:
        batch = db.scalars(
            select(AuditLog).where(AuditLog.id > last_id).order_by(AuditLog.id).limit(batch_size)
        ).all()
        if not batch:
            break

        for entry in batch:
            if entry.prev_hash != prev_hash:
                logger.error(
                    "Audit chain broken: prev_hash mismatch",
                    audit_id=entry.id,
                    expected=prev_hash,
                    actual=entry.prev_hash,
                )
                return ChainVerification(False, checked, entry.id, "prev_hash mismatch")

            computed = compute_entry_hash(entry, prev_hash)
            if entry.entry_hash != computed:
                logger.error(
                    "Audit chain broken: hash mismatch",
                    audit_id=entry.id,
                    stored=entry.entry_hash,
                    computed=computed,
                )
                return ChainVerification(False, checked, entry.id, "entry_hash mismatch")

            prev_hash = entry.entry_hash
            checked += 1
            last_id = entry.id

    logger.info("Audit chain verified", entries=checked)
    return ChainVerification(True, checked)


# =============================================================================
# Queries
# =============================================================================


@dataclass
class AuditFilters:
    actor_email: Optional[str] = None
    actor_id: Optional[str] = None
    table_name: Optional[str] = None
    action: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: int = Limits.AUDIT_DEFAULT_LIMIT
    offset: int = 0


class AuditQueryService:
    """Read-only access to the audit log."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def list_entries(self, filters: AuditFilters) -> tuple[list[AuditLog], int]:
        """
        Entries matching the filters, newest first.

        Returns:
            (page of entries, total matching entries)
        """
        conditions = []
        if filters.actor_email:
            conditions.append(func.lower(AuditLog.actor_email) == filters.actor_email.strip().lower())
        if filters.actor_id:
            conditions.append(AuditLog.actor_id == filters.actor_id)
        if filters.table_name:
            conditions.append(AuditLog.table_name == filters.table_name)
        if filters.action:
            conditions.append(AuditLog.action == filters.action.upper())
        if filters.date_from:
            conditions.append(AuditLog.occurred_at >= _start_of_day(filters.date_from))
        if filters.date_to:
            conditions.append(AuditLog.occurred_at < _start_of_day(filters.date_to + timedelta(days=1)))

        total = self._db.scalar(select(func.count()).select_from(AuditLog).where(*conditions))
        limit = max(1, min(filters.limit, Limits.AUDIT_MAX_LIMIT))
        entries = self._db.scalars(
            select(AuditLog)
            .where(*conditions)
            .order_by(AuditLog.occurred_at.desc(), AuditLog.id.desc())
            .offset(max(filters.offset, 0))
            .limit(limit)
        ).all()
        return list(entries), total or 0


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)
