"""DecisionLedger - Record Lifecycle Service (记录生命周期)

PR 关闭/合并、人工确认、缺口处理，以及组织解析。

状态流转：
- OPEN 期间由重算推导 PENDING / NEEDS_REVIEW / CONFIRMED
- 关闭时：无未解决缺口 → COMPLETE，否则 INCOMPLETE
- 合并时额外封存证据金库（封存成功后记录为 COMPLETE）
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.orm import Session

from decisionledger.core.exceptions import (
    GapNotFoundError,
    OrganizationNotFoundError,
    RecordNotFoundError,
)
from decisionledger.core.locks import RecordLockRegistry, get_record_locks
from decisionledger.database.audit_log_models import AuditEventType
from decisionledger.database.models import (
    DecisionEvidenceRecord,
    EvidenceGap,
    Organization,
    PRState,
    RecordStatus,
)
from decisionledger.services.audit_service import write_audit_event
from decisionledger.services.lookup import coerce_uuid, get_record
from decisionledger.services.vault_service import create_evidence_vault

logger = logging.getLogger(__name__)


class OrgResolution(str, Enum):
    """组织解析策略（由调用方显式传入）"""
    STRICT = "strict"  # 只按 slug 匹配
    FIRST_ORGANIZATION = "first_organization"  # 匹配不到时回退到最早创建的组织


class CloseResult(BaseModel):
    """PR 关闭结果"""
    record_id: UUID
    pr_state: PRState
    status: RecordStatus
    unresolved_gap_count: int
    vault_id: Optional[UUID] = None


def resolve_organization(
    db: Session,
    slug: str | None,
    strategy: OrgResolution = OrgResolution.STRICT,
) -> Organization:
    """按 slug 解析组织

    Raises:
        OrganizationNotFoundError: 无法按当前策略解析出组织
    """
    if slug:
        org = db.query(Organization).filter(Organization.slug == slug).first()
        if org is not None:
            return org

    if strategy == OrgResolution.FIRST_ORGANIZATION:
        org = db.query(Organization).order_by(Organization.created_at.asc()).first()
        if org is not None:
            logger.warning(f"Organization {slug!r} not found, falling back to {org.slug!r}")
            return org

    raise OrganizationNotFoundError(f"Organization not found: {slug!r} (strategy={strategy.value})")


def _require_record(db: Session, der_id: UUID | str) -> DecisionEvidenceRecord:
    record = get_record(db, der_id)
    if record is None:
        raise RecordNotFoundError(der_id)
    return record


def apply_pr_closed(
    db: Session,
    der_id: UUID | str,
    *,
    merged: bool,
    merged_at: datetime | None = None,
    merged_by: str | None = None,
    seal_vault: bool = True,
    locks: RecordLockRegistry | None = None,
) -> CloseResult:
    """处理 PR 关闭（合并或直接关闭）

    Args:
        db: 数据库会话
        der_id: 决策证据记录 ID
        merged: 是否为合并
        merged_at: 合并时间（合并且未提供时取当前时间）
        merged_by: 合并人（默认取 PR 作者）
        seal_vault: 合并时是否封存证据金库
        locks: 记录锁表（可选）

    Raises:
        RecordNotFoundError: 记录不存在
    """
    locks = locks or get_record_locks()
    record = _require_record(db, der_id)
    record_id = record.id

    with locks.hold(record_id):
        db.refresh(record)
        unresolved = sum(1 for g in record.gaps if not g.resolved)

        # 已封存的记录不可再变更
        if record.vault is not None:
            logger.info(f"Record {record_id} already sealed in vault {record.vault.id}, ignoring close event")
            return CloseResult(
                record_id=record_id,
                pr_state=record.pr_state,
                status=record.status,
                unresolved_gap_count=unresolved,
                vault_id=record.vault.id,
            )

        record.pr_state = PRState.MERGED if merged else PRState.CLOSED
        record.pr_merged_at = (merged_at or datetime.now(timezone.utc)) if merged else None
        record.status = RecordStatus.INCOMPLETE if unresolved else RecordStatus.COMPLETE
        try:
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to close record {record_id}: {e}")
            raise

        logger.info(
            f"Record {record_id} closed: merged={merged}, "
            f"status={record.status.value}, unresolved_gaps={unresolved}"
        )

        vault_id = None
        if merged and seal_vault:
            vault_id = create_evidence_vault(
                db,
                record_id,
                merged_by or record.pr_author,
                locks=locks,
            )
            db.refresh(record)

    write_audit_event(
        db,
        event_type=AuditEventType.RECORD_CLOSED,
        record_id=record_id,
        actor=merged_by,
        status=record.status.value,
        details={
            "merged": merged,
            "unresolved_gaps": unresolved,
            "vault_id": str(vault_id) if vault_id else None,
        },
    )

    return CloseResult(
        record_id=record_id,
        pr_state=record.pr_state,
        status=record.status,
        unresolved_gap_count=unresolved,
        vault_id=vault_id,
    )


def resolve_gap(
    db: Session,
    gap_id: UUID | str,
    resolved_by: str,
    *,
    locks: RecordLockRegistry | None = None,
) -> EvidenceGap:
    """人工标记缺口已解决

    在记录级锁内执行，与重算互斥。
    注意：下一次重算会整体替换缺口集合，已解决标记不会保留。

    Raises:
        GapNotFoundError: 缺口不存在（包括已被重算替换）
    """
    gid = coerce_uuid(gap_id)
    gap = db.query(EvidenceGap).filter(EvidenceGap.id == gid).first() if gid else None
    if gap is None:
        raise GapNotFoundError(gap_id)

    record_id = gap.der_id
    locks = locks or get_record_locks()
    with locks.hold(record_id):
        # 持锁后重新读取，缺口可能已被并发重算删除
        gap = (
            db.query(EvidenceGap)
            .filter(EvidenceGap.id == gid)
            .populate_existing()
            .first()
        )
        if gap is None:
            raise GapNotFoundError(gap_id)

        try:
            gap.resolved = True
            gap.resolved_at = datetime.now(timezone.utc)
            gap.resolved_by = resolved_by
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to resolve gap {gap_id}: {e}")
            raise
        db.refresh(gap)

    logger.info(f"Gap {gap.id} ({gap.type.value}) resolved by {resolved_by}")
    write_audit_event(
        db,
        event_type=AuditEventType.GAP_RESOLVED,
        record_id=record_id,
        actor=resolved_by,
        status="resolved",
        details={"gap_id": str(gap.id), "type": gap.type.value},
    )
    return gap


def confirm_record(
    db: Session,
    der_id: UUID | str,
    confirmed_by: str | None = None,
    *,
    locks: RecordLockRegistry | None = None,
) -> DecisionEvidenceRecord:
    """人工确认记录；已 COMPLETE 的记录保持不变

    Raises:
        RecordNotFoundError: 记录不存在
    """
    record = _require_record(db, der_id)
    locks = locks or get_record_locks()
    with locks.hold(record.id):
        db.refresh(record)
        if record.status != RecordStatus.COMPLETE:
            try:
                record.status = RecordStatus.CONFIRMED
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to confirm record {record.id}: {e}")
                raise
            db.refresh(record)
            logger.info(f"Record {record.id} confirmed by {confirmed_by}")

    write_audit_event(
        db,
        event_type=AuditEventType.RECORD_CONFIRMED,
        record_id=record.id,
        actor=confirmed_by,
        status=record.status.value,
    )
    return record
