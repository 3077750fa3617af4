"""Tests for Record Lifecycle Service

验证 PR 关闭/合并流程、人工确认、缺口处理与组织解析。
"""

import threading
from datetime import datetime
from uuid import uuid4

import pytest

from decisionledger.core.exceptions import (
    GapNotFoundError,
    OrganizationNotFoundError,
    RecordNotFoundError,
)
from decisionledger.core.locks import RecordLockRegistry
from decisionledger.database.audit_log_models import AuditEventType
from decisionledger.database.models import (
    EvidenceGap,
    EvidenceVault,
    PRState,
    RecordStatus,
    ReviewState,
)
from decisionledger.services.audit_service import query_audit_events
from decisionledger.services.recalculation_service import recalculate_gaps_and_score
from decisionledger.services.record_service import (
    OrgResolution,
    apply_pr_closed,
    confirm_record,
    resolve_gap,
    resolve_organization,
)
from decisionledger.services.vault_service import verify_vault_integrity

DESCRIPTION = (
    "Adds exponential backoff to the payment retry worker so that transient "
    "gateway failures no longer page on-call. Fixes PAY-1234."
)
MERGED_AT = datetime(2025, 3, 2, 17, 30, 0)


class _RecordingLocks(RecordLockRegistry):
    """记录被加锁的 key"""

    def __init__(self):
        super().__init__()
        self.keys = []

    def hold(self, record_id):
        self.keys.append(str(record_id))
        return super().hold(record_id)


class TestApplyPrClosed:
    """PR 关闭"""

    def test_merge_seals_vault(self, db_session, make_record):
        record = make_record(description=DESCRIPTION, reviews=[("bob", ReviewState.APPROVED)])
        recalculate_gaps_and_score(db_session, record.id)

        result = apply_pr_closed(db_session, record.id, merged=True, merged_at=MERGED_AT, merged_by="dave")

        assert result.pr_state == PRState.MERGED
        assert result.status == RecordStatus.COMPLETE
        assert result.unresolved_gap_count == 0
        assert result.vault_id is not None
        assert record.pr_merged_at == MERGED_AT
        assert verify_vault_integrity(db_session, result.vault_id).valid is True

    def test_merge_with_gaps_still_sealed(self, db_session, make_record):
        """有未解决缺口的合并：快照记录缺口，封存后记录为 COMPLETE"""
        record = make_record(description=None)
        recalculate_gaps_and_score(db_session, record.id)

        result = apply_pr_closed(db_session, record.id, merged=True, merged_by="dave")

        assert result.unresolved_gap_count == 4
        assert result.vault_id is not None
        assert result.status == RecordStatus.COMPLETE

    def test_merge_without_sealing_marks_incomplete(self, db_session, make_record):
        record = make_record(description=None)
        recalculate_gaps_and_score(db_session, record.id)

        result = apply_pr_closed(db_session, record.id, merged=True, seal_vault=False)

        assert result.status == RecordStatus.INCOMPLETE
        assert result.vault_id is None
        assert db_session.query(EvidenceVault).count() == 0

    def test_close_without_merge(self, db_session, make_record):
        record = make_record(description=DESCRIPTION, reviews=[("bob", ReviewState.APPROVED)])
        recalculate_gaps_and_score(db_session, record.id)

        result = apply_pr_closed(db_session, record.id, merged=False)

        assert result.pr_state == PRState.CLOSED
        assert result.status == RecordStatus.COMPLETE
        assert result.vault_id is None
        assert record.pr_merged_at is None
        assert db_session.query(EvidenceVault).count() == 0

    def test_close_with_unresolved_gaps_is_incomplete(self, db_session, make_record):
        record = make_record(description=None)
        recalculate_gaps_and_score(db_session, record.id)

        result = apply_pr_closed(db_session, record.id, merged=False)

        assert result.status == RecordStatus.INCOMPLETE
        assert result.unresolved_gap_count == 4

    def test_resolved_gaps_do_not_count(self, db_session, make_record):
        record = make_record(description=DESCRIPTION, reviews=[("bob", ReviewState.COMMENTED)])
        recalculate_gaps_and_score(db_session, record.id)
        for gap in db_session.query(EvidenceGap).filter(EvidenceGap.der_id == record.id).all():
            resolve_gap(db_session, gap.id, "carol")

        result = apply_pr_closed(db_session, record.id, merged=False)

        assert result.status == RecordStatus.COMPLETE

    def test_duplicate_merge_event(self, db_session, make_record):
        record = make_record(description=DESCRIPTION)

        first = apply_pr_closed(db_session, record.id, merged=True, merged_by="dave")
        second = apply_pr_closed(db_session, record.id, merged=True, merged_by="dave")

        assert first.vault_id == second.vault_id
        assert second.status == RecordStatus.COMPLETE
        assert db_session.query(EvidenceVault).count() == 1

    def test_merged_by_defaults_to_author(self, db_session, make_record):
        record = make_record(description=DESCRIPTION)
        result = apply_pr_closed(db_session, record.id, merged=True)
        vault = db_session.query(EvidenceVault).filter(EvidenceVault.id == result.vault_id).one()
        assert vault.merged_by == "alice"

    def test_record_not_found(self, db_session):
        with pytest.raises(RecordNotFoundError):
            apply_pr_closed(db_session, uuid4(), merged=True)

    def test_audit_events(self, db_session, make_record):
        record = make_record(description=DESCRIPTION)
        apply_pr_closed(db_session, record.id, merged=True, merged_by="dave")

        types = [e.event_type for e in query_audit_events(db_session, record.id)]
        assert AuditEventType.VAULT_SEALED in types
        assert AuditEventType.RECORD_CLOSED in types


class TestResolveGap:
    """缺口处理"""

    def test_resolve(self, db_session, make_record):
        record = make_record(description=None)
        recalculate_gaps_and_score(db_session, record.id)
        gap = db_session.query(EvidenceGap).filter(EvidenceGap.der_id == record.id).first()

        resolved = resolve_gap(db_session, gap.id, "carol")

        assert resolved.resolved is True
        assert resolved.resolved_by == "carol"
        assert resolved.resolved_at is not None
        events = query_audit_events(db_session, record.id, event_types=[AuditEventType.GAP_RESOLVED])
        assert len(events) == 1

    def test_unknown_gap(self, db_session):
        with pytest.raises(GapNotFoundError):
            resolve_gap(db_session, uuid4(), "carol")
        with pytest.raises(GapNotFoundError):
            resolve_gap(db_session, "nope", "carol")

    def test_holds_record_lock(self, db_session, make_record):
        record = make_record(description=None)
        recalculate_gaps_and_score(db_session, record.id)
        gap = db_session.query(EvidenceGap).filter(EvidenceGap.der_id == record.id).first()
        locks = _RecordingLocks()

        resolve_gap(db_session, gap.id, "carol", locks=locks)

        assert locks.keys == [str(record.id)]
        assert locks.active_keys() == []

    def test_gap_replaced_by_recalculation(self, db_session, make_record):
        """重算替换后的旧缺口 ID 不再可解决"""
        record = make_record(description=None)
        recalculate_gaps_and_score(db_session, record.id)
        stale_id = db_session.query(EvidenceGap).filter(EvidenceGap.der_id == record.id).first().id
        recalculate_gaps_and_score(db_session, record.id)

        with pytest.raises(GapNotFoundError):
            resolve_gap(db_session, stale_id, "carol")
        assert db_session.query(EvidenceGap).filter(EvidenceGap.resolved.is_(True)).count() == 0


class TestConfirmRecord:
    """人工确认"""

    def test_confirm(self, db_session, make_record):
        record = make_record(status=RecordStatus.NEEDS_REVIEW)
        assert confirm_record(db_session, record.id, "carol").status == RecordStatus.CONFIRMED

    def test_complete_record_unchanged(self, db_session, make_record):
        record = make_record(status=RecordStatus.COMPLETE, pr_state=PRState.MERGED)
        assert confirm_record(db_session, record.id, "carol").status == RecordStatus.COMPLETE

    def test_unknown_record(self, db_session):
        with pytest.raises(RecordNotFoundError):
            confirm_record(db_session, uuid4())

    def test_waits_for_record_lock(self, db_session, make_record):
        """持锁期间（例如重算中）确认会等待锁释放"""
        record = make_record(status=RecordStatus.NEEDS_REVIEW)
        locks = RecordLockRegistry()
        done = threading.Event()

        def _confirm():
            confirm_record(db_session, record.id, "carol", locks=locks)
            done.set()

        with locks.hold(record.id):
            t = threading.Thread(target=_confirm)
            t.start()
            assert done.wait(timeout=0.2) is False

        t.join(timeout=5)
        assert done.is_set()
        assert record.status == RecordStatus.CONFIRMED


class TestResolveOrganization:
    """组织解析"""

    def test_by_slug(self, db_session, make_org):
        make_org("first")
        second = make_org("second")
        assert resolve_organization(db_session, "second").id == second.id

    def test_strict_raises(self, db_session, make_org):
        make_org("first")
        with pytest.raises(OrganizationNotFoundError):
            resolve_organization(db_session, "missing", OrgResolution.STRICT)

    def test_first_organization_fallback(self, db_session, make_org):
        first = make_org("first")
        make_org("second")
        org = resolve_organization(db_session, "missing", OrgResolution.FIRST_ORGANIZATION)
        assert org.id == first.id

    def test_fallback_without_any_organization(self, db_session):
        with pytest.raises(OrganizationNotFoundError):
            resolve_organization(db_session, None, OrgResolution.FIRST_ORGANIZATION)
