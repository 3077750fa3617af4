"""DecisionLedger - Evidence Vault Service (证据金库)

PR 合并时封存不可变的证据快照，并可在之后校验其完整性。

封存流程：
1. 记录必须存在且处于 MERGED 状态
2. 记录级锁内检查已有金库，存在则直接返回其 ID（重复合并事件幂等）
3. 组装快照（PR / 代码 / 工单 / 评审 / 批准 / 聊天 / 定性判断 / 分数 / 缺口 / 合规结果）
4. 规范化序列化并计算 SHA-256
5. 快照文本 + 哈希 + 封存标记与记录状态 COMPLETE 在同一事务中写入

校验流程基于已存储的快照文本重新计算哈希，不重新读取实时数据；校验从不抛异常。
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from decisionledger.core.config import settings
from decisionledger.core.exceptions import InvalidRecordStateError, RecordNotFoundError
from decisionledger.core.locks import RecordLockRegistry, get_record_locks
from decisionledger.database.audit_log_models import AuditEventType
from decisionledger.database.models import (
    DecisionEvidenceRecord,
    EvidenceVault,
    OrganizationFramework,
    PRState,
    RecordStatus,
    ReviewState,
)
from decisionledger.governance.canonical import canonical_dumps, sha256_text
from decisionledger.governance.compliance import (
    ComplianceResult,
    ComplianceSummary,
    FrameworkCatalog,
    build_compliance_evidence,
    evaluate_compliance,
    summarize_compliance,
)
from decisionledger.governance.extractor import classify_ticket_source
from decisionledger.governance.policy_loader import PolicyConfig, get_policy
from decisionledger.services.audit_service import write_audit_event
from decisionledger.services.lookup import coerce_uuid, get_record, get_vault_for_record

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.1.0"
HASH_PREFIX_LENGTH = 16


# ============================================================
# 快照结构
# ============================================================

class PRSnapshot(BaseModel):
    title: str
    number: int
    url: str
    author: str
    description: Optional[str] = None
    base_branch: str
    head_branch: str
    merged_at: datetime
    merged_by: str


class CodeSnapshot(BaseModel):
    files_changed: list[str] = Field(default_factory=list)
    file_count: int = 0


class TicketSnapshot(BaseModel):
    id: str
    source: str
    url: Optional[str] = None


class ReviewSnapshot(BaseModel):
    author: str
    state: str
    body: Optional[str] = None
    submitted_at: datetime


class ApprovalSnapshot(BaseModel):
    author: str
    submitted_at: datetime


class ChatThreadSnapshot(BaseModel):
    url: str


class JudgmentSnapshot(BaseModel):
    """定性判断（UNKNOWN 表示分析器未给出结论）"""
    doc_quality: str
    intent_alignment: str
    audit_readiness: str


class GapSnapshot(BaseModel):
    type: str
    severity: str
    message: str
    resolved: bool


class ComplianceSnapshot(BaseModel):
    """封存时刻的合规评估结果（嵌入结果本身，而非引用）"""
    enabled_frameworks: list[str]
    evaluated_at: datetime
    results: list[ComplianceResult] = Field(default_factory=list)


class VaultSnapshot(BaseModel):
    """金库快照（规范化序列化后计算哈希）"""
    model_config = ConfigDict(extra="forbid")

    pr: PRSnapshot
    code: CodeSnapshot
    tickets: list[TicketSnapshot] = Field(default_factory=list)
    reviews: list[ReviewSnapshot] = Field(default_factory=list)
    approvals: list[ApprovalSnapshot] = Field(default_factory=list)
    chat_threads: list[ChatThreadSnapshot] = Field(default_factory=list)
    judgments: JudgmentSnapshot
    evidence_score: int
    gaps: list[GapSnapshot] = Field(default_factory=list)
    compliance: Optional[ComplianceSnapshot] = None
    captured_at: datetime
    version: str = SNAPSHOT_VERSION


# ============================================================
# 结果结构
# ============================================================

class IntegrityResult(BaseModel):
    """完整性校验结果"""
    valid: bool
    reason: Optional[str] = None
    stored_hash: Optional[str] = None
    computed_hash: Optional[str] = None


class VaultComplianceSummary(ComplianceSummary):
    enabled_frameworks: list[str] = Field(default_factory=list)
    evaluated_at: Optional[datetime] = None


class VaultSummary(BaseModel):
    """金库摘要（展示用）"""
    id: UUID
    hash: str
    hash_prefix: str
    is_sealed: bool
    sealed_at: Optional[datetime] = None
    sealed_by: Optional[str] = None
    merged_at: Optional[datetime] = None
    merged_by: Optional[str] = None
    pr_title: str
    pr_number: int
    pr_url: str
    evidence_score: int
    review_count: int
    approval_count: int
    ticket_count: int
    unresolved_gap_count: int
    compliance: Optional[VaultComplianceSummary] = None
    version: str


# ============================================================
# 快照组装
# ============================================================

def get_enabled_framework_codes(
    db: Session,
    record: DecisionEvidenceRecord,
    policy: PolicyConfig | None = None,
) -> list[str]:
    """组织启用的框架代码；组织未启用任何框架时使用策略默认值"""
    codes: list[str] = []
    if record.organization_id is not None:
        rows = (
            db.query(OrganizationFramework)
            .filter(
                OrganizationFramework.organization_id == record.organization_id,
                OrganizationFramework.is_active.is_(True),
            )
            .order_by(OrganizationFramework.framework_code)
            .all()
        )
        codes = [row.framework_code for row in rows]

    if not codes:
        if policy is None:
            policy = get_policy()
        codes = list(policy.default_frameworks)
    return codes


def build_vault_snapshot(
    record: DecisionEvidenceRecord,
    merged_by: str,
    enabled_frameworks: list[str],
    *,
    now: datetime | None = None,
    catalog: FrameworkCatalog | None = None,
) -> VaultSnapshot:
    """从记录组装金库快照"""
    now = now or datetime.now(timezone.utc)
    reviews = list(record.reviews)
    files_changed = list(record.files_changed or [])

    compliance = None
    if enabled_frameworks:
        evidence = build_compliance_evidence(record)
        compliance = ComplianceSnapshot(
            enabled_frameworks=list(enabled_frameworks),
            evaluated_at=now,
            results=evaluate_compliance(evidence, enabled_frameworks, catalog),
        )
        logger.info(f"Evaluated compliance against {len(enabled_frameworks)} framework(s)")

    return VaultSnapshot(
        pr=PRSnapshot(
            title=record.pr_title,
            number=record.pr_number,
            url=record.pr_url or "",
            author=record.pr_author,
            description=record.description,
            base_branch=record.pr_base_branch or "",
            head_branch=record.pr_head_branch or "",
            merged_at=record.pr_merged_at or now,
            merged_by=merged_by,
        ),
        code=CodeSnapshot(files_changed=files_changed, file_count=len(files_changed)),
        tickets=[
            TicketSnapshot(
                id=link,
                source=classify_ticket_source(link),
                url=link if link.startswith("http") else None,
            )
            for link in (record.ticket_links or [])
        ],
        reviews=[
            ReviewSnapshot(
                author=r.author,
                state=r.state.value,
                body=r.body,
                submitted_at=r.submitted_at,
            )
            for r in reviews
        ],
        approvals=[
            ApprovalSnapshot(author=r.author, submitted_at=r.submitted_at)
            for r in reviews
            if r.state == ReviewState.APPROVED
        ],
        chat_threads=[ChatThreadSnapshot(url=url) for url in (record.chat_threads or [])],
        judgments=JudgmentSnapshot(
            doc_quality=record.doc_quality.value,
            intent_alignment=record.intent_alignment.value,
            audit_readiness=record.audit_readiness.value,
        ),
        evidence_score=record.evidence_score,
        gaps=[
            GapSnapshot(
                type=g.type.value,
                severity=g.severity.value,
                message=g.message,
                resolved=g.resolved,
            )
            for g in record.gaps
        ],
        compliance=compliance,
        captured_at=now,
    )


def serialize_snapshot(snapshot: VaultSnapshot) -> str:
    """规范化序列化（封存与校验共用同一编码器）"""
    return canonical_dumps(snapshot.model_dump(mode="json"))


# ============================================================
# 封存 / 校验 / 摘要
# ============================================================

def create_evidence_vault(
    db: Session,
    der_id: UUID | str,
    merged_by: str,
    sealed_by: str | None = None,
    *,
    policy: PolicyConfig | None = None,
    catalog: FrameworkCatalog | None = None,
    locks: RecordLockRegistry | None = None,
) -> UUID:
    """为已合并的 PR 创建并封存证据金库

    Args:
        db: 数据库会话
        der_id: 决策证据记录 ID
        merged_by: 合并人
        sealed_by: 封存者（默认取配置 VAULT_SEALED_BY）
        policy: 策略配置（可选，用于默认框架）
        catalog: 框架目录（可选）
        locks: 记录锁表（可选）

    Returns:
        金库 ID（已存在时返回已有金库 ID）

    Raises:
        RecordNotFoundError: 记录不存在
        InvalidRecordStateError: PR 未合并
    """
    record_id = coerce_uuid(der_id)
    if record_id is None:
        raise RecordNotFoundError(der_id)
    sealed_by = sealed_by or settings.VAULT_SEALED_BY
    locks = locks or get_record_locks()

    with locks.hold(record_id):
        record = get_record(db, record_id)
        if record is None:
            raise RecordNotFoundError(der_id)
        db.refresh(record)

        if record.pr_state != PRState.MERGED:
            raise InvalidRecordStateError(record_id, record.pr_state.value, PRState.MERGED.value)

        existing = get_vault_for_record(db, record_id)
        if existing is not None:
            logger.info(f"Vault already exists for record {record_id}: {existing.id}")
            return existing.id

        now = datetime.now(timezone.utc)
        enabled = get_enabled_framework_codes(db, record, policy)
        snapshot = build_vault_snapshot(record, merged_by, enabled, now=now, catalog=catalog)
        snapshot_text = serialize_snapshot(snapshot)
        snapshot_hash = sha256_text(snapshot_text)

        logger.info(
            f"Compiled {len(snapshot.reviews)} reviews, {len(snapshot.gaps)} gaps, "
            f"{len(snapshot.tickets)} tickets for record {record_id}"
        )
        logger.info(f"Vault hash: {snapshot_hash[:HASH_PREFIX_LENGTH]}...")

        vault = EvidenceVault(
            decision_record_id=record_id,
            organization_id=record.organization_id,
            snapshot_data=snapshot_text,
            snapshot_hash=snapshot_hash,
            merged_at=snapshot.pr.merged_at,
            merged_by=merged_by,
            is_sealed=True,
            sealed_at=now,
            sealed_by=sealed_by,
        )
        try:
            db.add(vault)
            record.status = RecordStatus.COMPLETE
            db.commit()
        except IntegrityError:
            # 其他进程已抢先封存
            db.rollback()
            existing = get_vault_for_record(db, record_id)
            if existing is None:
                raise
            logger.info(f"Vault created concurrently for record {record_id}: {existing.id}")
            return existing.id
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to seal vault for record {record_id}: {e}")
            raise

        vault_id = vault.id

    logger.info(f"Created and sealed vault {vault_id} for record {record_id}")
    write_audit_event(
        db,
        event_type=AuditEventType.VAULT_SEALED,
        record_id=record_id,
        actor=sealed_by,
        status="sealed",
        details={"vault_id": str(vault_id), "hash": snapshot_hash, "merged_by": merged_by},
    )
    return vault_id


def _get_vault(db: Session, vault_id: UUID | str) -> Optional[EvidenceVault]:
    vid = coerce_uuid(vault_id)
    if vid is None:
        return None
    return db.query(EvidenceVault).filter(EvidenceVault.id == vid).first()


def verify_vault_integrity(db: Session, vault_id: UUID | str) -> IntegrityResult:
    """校验金库完整性（基于已存储快照重新计算哈希）

    Returns:
        IntegrityResult；未找到 / 未封存 / 无法解析 / 哈希不匹配均以 valid=False 报告
    """
    vault = _get_vault(db, vault_id)
    if vault is None:
        return IntegrityResult(valid=False, reason="Vault not found")

    if not vault.is_sealed:
        return IntegrityResult(valid=False, reason="Vault is not sealed", stored_hash=vault.snapshot_hash)

    try:
        computed = sha256_text(canonical_dumps(json.loads(vault.snapshot_data)))
    except (TypeError, ValueError, RecursionError) as e:
        logger.error(f"Vault {vault_id} snapshot could not be parsed: {e}")
        result = IntegrityResult(
            valid=False,
            reason="Snapshot data could not be parsed",
            stored_hash=vault.snapshot_hash,
        )
    else:
        if computed != vault.snapshot_hash:
            logger.error(f"Hash mismatch for vault {vault_id}")
            logger.error(f"Stored hash: {vault.snapshot_hash}")
            logger.error(f"Calculated hash: {computed}")
            result = IntegrityResult(
                valid=False,
                reason="Hash mismatch - evidence may have been tampered with",
                stored_hash=vault.snapshot_hash,
                computed_hash=computed,
            )
        else:
            logger.info(f"Integrity verified for vault {vault_id}")
            result = IntegrityResult(valid=True, stored_hash=vault.snapshot_hash, computed_hash=computed)

    write_audit_event(
        db,
        event_type=AuditEventType.VAULT_VERIFIED if result.valid else AuditEventType.VAULT_INTEGRITY_FAILED,
        record_id=vault.decision_record_id,
        status="valid" if result.valid else "invalid",
        details={"vault_id": str(vault.id), "reason": result.reason},
    )
    return result


def get_vault_summary(db: Session, vault_id: UUID | str) -> Optional[VaultSummary]:
    """获取金库摘要；金库不存在或快照无法解析时返回 None"""
    vault = _get_vault(db, vault_id)
    if vault is None:
        return None

    try:
        snapshot = VaultSnapshot.model_validate(json.loads(vault.snapshot_data))
    except (TypeError, ValueError, RecursionError) as e:
        logger.error(f"Vault {vault_id} snapshot could not be parsed: {e}")
        return None

    compliance = None
    if snapshot.compliance and snapshot.compliance.results:
        aggregate = summarize_compliance(snapshot.compliance.results)
        compliance = VaultComplianceSummary(
            **aggregate.model_dump(),
            enabled_frameworks=snapshot.compliance.enabled_frameworks,
            evaluated_at=snapshot.compliance.evaluated_at,
        )

    record = vault.record
    return VaultSummary(
        id=vault.id,
        hash=vault.snapshot_hash,
        hash_prefix=vault.snapshot_hash[:HASH_PREFIX_LENGTH],
        is_sealed=vault.is_sealed,
        sealed_at=vault.sealed_at,
        sealed_by=vault.sealed_by,
        merged_at=vault.merged_at,
        merged_by=vault.merged_by,
        pr_title=record.pr_title if record else snapshot.pr.title,
        pr_number=record.pr_number if record else snapshot.pr.number,
        pr_url=record.pr_url if record else snapshot.pr.url,
        evidence_score=snapshot.evidence_score,
        review_count=len(snapshot.reviews),
        approval_count=len(snapshot.approvals),
        ticket_count=len(snapshot.tickets),
        unresolved_gap_count=sum(1 for g in snapshot.gaps if not g.resolved),
        compliance=compliance,
        version=snapshot.version,
    )
