"""
Tests for the audit recorder, hash chain and audit queries.
"""

import json
import unicodedata
from datetime import date, datetime, timedelta, timezone

import pytest
from hypothesis import given, settings, strategies as st
from sqlalchemy import create_engine, select, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shared.config.constants import AuditAction
from shared.utils.validators import fold_diacritics

from registro_api.models import AuditLog, AuditLogImmutableError
from registro_api.services.audit import (
    GENESIS_HASH,
    AuditContext,
    AuditFilters,
    AuditQueryService,
    AuditRecorder,
    build_normalizer,
    compute_changes,
    compute_entry_hash,
    keep_field_name,
    verify_chain,
)


@pytest.fixture
def recorder(session_factory):
    return AuditRecorder(session_factory)


def _record_three(recorder, ctx):
    recorder.record(AuditAction.CREATE, "legajos", 10, None, {"Legajo": 10, "Titular": "A"}, ctx)
    recorder.record(
        AuditAction.UPDATE, "legajos", 10, {"Legajo": 10, "Titular": "A"}, {"Legajo": 10, "Titular": "B"}, ctx
    )
    recorder.record(AuditAction.DELETE, "legajos", 10, {"Legajo": 10, "Titular": "B"}, None, ctx)


class TestAuditRecorder:
    def test_records_actor_and_request_metadata(self, recorder, audit_ctx):
        entry = recorder.record(AuditAction.CREATE, "cooperativas", 104, None, {"Matricula": 104}, audit_ctx)

        assert entry is not None
        assert entry.id is not None
        assert entry.actor_id == "u-editor"
        assert entry.actor_email == "editor@test.com"
        assert entry.actor_display_name == "Test Editor"
        assert entry.record_id == "104"
        assert entry.source_ip == "10.0.0.5"
        assert entry.user_agent == "pytest"
        assert json.loads(entry.session_context) == {"request_id": "req-1", "token_id": "tok-1", "role": "EDITOR"}

    def test_anonymous_context(self, recorder):
        entry = recorder.record(AuditAction.CREATE, "cooperativas", 1, None, {"Matricula": 1}, AuditContext())
        assert entry.actor_id is None
        assert entry.actor_email is None

    def test_update_stores_changes(self, recorder, audit_ctx):
        entry = recorder.record(
            AuditAction.UPDATE,
            "legajos",
            2,
            {"Legajo": 2, "Titular": "Juan", "Monto": 200},
            {"Legajo": 2, "Titular": "Juan G.", "Monto": 200},
            audit_ctx,
        )
        assert json.loads(entry.changes) == {"Titular": {"old": "Juan", "new": "Juan G."}}

    def test_create_and_delete_have_no_changes(self, recorder, audit_ctx):
        created = recorder.record(AuditAction.CREATE, "legajos", 1, None, {"Legajo": 1}, audit_ctx)
        deleted = recorder.record(AuditAction.DELETE, "legajos", 1, {"Legajo": 1}, None, audit_ctx)
        assert created.changes is None
        assert deleted.changes is None

    @pytest.mark.parametrize(
        "action,before,after",
        [
            (AuditAction.CREATE, {"a": 1}, {"a": 1}),
            (AuditAction.CREATE, None, None),
            (AuditAction.UPDATE, None, {"a": 1}),
            (AuditAction.UPDATE, {"a": 1}, None),
            (AuditAction.DELETE, None, None),
            (AuditAction.DELETE, {"a": 1}, {"a": 1}),
            ("PURGE", {"a": 1}, None),
        ],
    )
    def test_snapshots_must_match_action(self, recorder, audit_ctx, action, before, after):
        with pytest.raises(ValueError):
            recorder.record(action, "legajos", 1, before, after, audit_ctx)

    def test_field_names_are_folded(self, recorder, audit_ctx):
        entry = recorder.record(
            AuditAction.CREATE, "padron", 1, None, {"Matrícula": 1, "Año": 2024, "Región": "Centro"}, audit_ctx
        )
        assert json.loads(entry.after_snapshot) == {"Matricula": 1, "Ano": 2024, "Region": "Centro"}

    def test_folding_collision_last_wins(self, recorder):
        assert recorder.normalize({"Matrícula": 1, "Matricula": 2}) == {"Matricula": 2}

    def test_normalizer_can_be_disabled(self, session_factory, audit_ctx):
        recorder = AuditRecorder(session_factory, build_normalizer(False))
        entry = recorder.record(AuditAction.CREATE, "padron", 1, None, {"Matrícula": 1}, audit_ctx)
        assert json.loads(entry.after_snapshot) == {"Matrícula": 1}

    def test_build_normalizer(self):
        assert build_normalizer(True) is fold_diacritics
        assert build_normalizer(False) is keep_field_name

    def test_snapshot_values_are_json_encoded(self, recorder, audit_ctx):
        entry = recorder.record(
            AuditAction.CREATE,
            "legajos",
            1,
            None,
            {"Fecha": date(2024, 1, 15), "Titular": "Peña"},
            audit_ctx,
        )
        assert json.loads(entry.after_snapshot) == {"Fecha": "2024-01-15", "Titular": "Peña"}
        # Non-ASCII text is stored as-is
        assert "Peña" in entry.after_snapshot

    def test_write_failure_is_swallowed(self, audit_ctx):
        # Store without the audit_log table
        broken = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
        recorder = AuditRecorder(sessionmaker(bind=broken))
        try:
            assert recorder.record(AuditAction.CREATE, "legajos", 1, None, {"Legajo": 1}, audit_ctx) is None
        finally:
            broken.dispose()


class TestHashChain:
    def test_first_entry_links_to_genesis(self, recorder, audit_ctx):
        entry = recorder.record(AuditAction.CREATE, "legajos", 1, None, {"Legajo": 1}, audit_ctx)
        assert entry.prev_hash == GENESIS_HASH
        assert len(entry.entry_hash) == 64

    def test_entries_are_chained(self, recorder, audit_ctx, db_session):
        _record_three(recorder, audit_ctx)
        entries = db_session.scalars(select(AuditLog).order_by(AuditLog.id)).all()

        assert len(entries) == 3
        assert entries[0].prev_hash == GENESIS_HASH
        assert entries[1].prev_hash == entries[0].entry_hash
        assert entries[2].prev_hash == entries[1].entry_hash

    def test_hash_is_stable_after_reload(self, recorder, audit_ctx, db_session):
        stored = recorder.record(AuditAction.CREATE, "legajos", 1, None, {"Legajo": 1}, audit_ctx)
        reloaded = db_session.get(AuditLog, stored.id)
        assert compute_entry_hash(reloaded, GENESIS_HASH) == stored.entry_hash

    def test_verify_intact_chain(self, recorder, audit_ctx, db_session):
        _record_three(recorder, audit_ctx)
        result = verify_chain(db_session)
        assert result.valid is True
        assert result.checked == 3
        assert result.first_invalid_id is None

    def test_verify_empty_log(self, db_session):
        result = verify_chain(db_session)
        assert result.valid is True
        assert result.checked == 0

    def test_verify_in_small_batches(self, recorder, audit_ctx, db_session):
        _record_three(recorder, audit_ctx)
        assert verify_chain(db_session, batch_size=1).checked == 3

    def test_tampered_snapshot_is_detected(self, recorder, audit_ctx, db_session):
        _record_three(recorder, audit_ctx)
        ids = db_session.scalars(select(AuditLog.id).order_by(AuditLog.id)).all()

        db_session.execute(
            text("UPDATE audit_log SET after_snapshot = :s WHERE id = :i"),
            {"s": '{"Legajo": 10, "Titular": "Z"}', "i": ids[1]},
        )
        db_session.commit()

        result = verify_chain(db_session)
        assert result.valid is False
        assert result.first_invalid_id == ids[1]
        assert result.checked == 1
        assert result.reason == "entry_hash mismatch"

    def test_deleted_entry_is_detected(self, recorder, audit_ctx, db_session):
        _record_three(recorder, audit_ctx)
        ids = db_session.scalars(select(AuditLog.id).order_by(AuditLog.id)).all()

        db_session.execute(text("DELETE FROM audit_log WHERE id = :i"), {"i": ids[1]})
        db_session.commit()

        result = verify_chain(db_session)
        assert result.valid is False
        assert result.first_invalid_id == ids[2]
        assert result.reason == "prev_hash mismatch"


class TestAppendOnly:
    def test_orm_update_is_refused(self, recorder, audit_ctx, db_session):
        stored = recorder.record(AuditAction.CREATE, "legajos", 1, None, {"Legajo": 1}, audit_ctx)
        entry = db_session.get(AuditLog, stored.id)
        entry.table_name = "otra"
        with pytest.raises(AuditLogImmutableError):
            db_session.flush()
        db_session.rollback()

    def test_orm_delete_is_refused(self, recorder, audit_ctx, db_session):
        stored = recorder.record(AuditAction.CREATE, "legajos", 1, None, {"Legajo": 1}, audit_ctx)
        db_session.delete(db_session.get(AuditLog, stored.id))
        with pytest.raises(AuditLogImmutableError):
            db_session.flush()
        db_session.rollback()


class TestChanges:
    def test_added_and_removed_keys(self):
        changes = compute_changes({"a": 1, "b": 2}, {"a": 1, "c": 3})
        assert changes == {"b": {"old": 2, "new": None}, "c": {"old": None, "new": 3}}

    def test_identical_snapshots(self):
        assert compute_changes({"a": 1}, {"a": 1}) == {}


class TestAuditQueryService:
    @pytest.fixture
    def populated(self, recorder, audit_ctx):
        other = AuditContext(principal=None, source_ip="10.0.0.9")
        recorder.record(AuditAction.CREATE, "legajos", 1, None, {"Legajo": 1}, audit_ctx)
        recorder.record(AuditAction.CREATE, "cooperativas", 104, None, {"Matricula": 104}, other)
        recorder.record(AuditAction.DELETE, "legajos", 1, {"Legajo": 1}, None, audit_ctx)

    def test_newest_first(self, db_session, populated):
        entries, total = AuditQueryService(db_session).list_entries(AuditFilters())
        assert total == 3
        assert [e.action for e in entries] == ["DELETE", "CREATE", "CREATE"]

    def test_filters(self, db_session, populated):
        service = AuditQueryService(db_session)

        _, total = service.list_entries(AuditFilters(table_name="legajos"))
        assert total == 2
        _, total = service.list_entries(AuditFilters(actor_email="EDITOR@test.com"))
        assert total == 2
        _, total = service.list_entries(AuditFilters(actor_id="u-editor", action="delete"))
        assert total == 1

    def test_date_range(self, db_session, populated):
        service = AuditQueryService(db_session)
        today = datetime.now(timezone.utc).date()

        _, total = service.list_entries(AuditFilters(date_from=today, date_to=today))
        assert total == 3
        _, total = service.list_entries(AuditFilters(date_to=today - timedelta(days=1)))
        assert total == 0

    def test_pagination(self, db_session, populated):
        entries, total = AuditQueryService(db_session).list_entries(AuditFilters(limit=1, offset=1))
        assert total == 3
        assert len(entries) == 1
        assert entries[0].table_name == "cooperativas"


class TestFieldNameNormalizer:
    @given(name=st.text(max_size=30))
    @settings(max_examples=100)
    def test_folding_is_idempotent(self, name):
        folded = fold_diacritics(name)
        assert fold_diacritics(folded) == folded
        assert not any(unicodedata.combining(ch) for ch in folded)

    @given(keys=st.lists(st.sampled_from(["Matrícula", "Matricula", "Año", "Ano", "Región"]), max_size=5))
    @settings(max_examples=50)
    def test_normalized_keys_are_folded(self, keys):
        recorder = AuditRecorder(sessionmaker())
        snapshot = {key: i for i, key in enumerate(keys)}
        normalized = recorder.normalize(snapshot)
        assert set(normalized) == {fold_diacritics(key) for key in keys}
