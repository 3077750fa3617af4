"""DecisionLedger - Recalculation Service (重算服务)

证据变化（PR 打开/编辑/同步、提交评审）时重新计算分数与缺口的唯一权威路径。

流程：
1. 从当前描述重新提取工单/聊天引用，与已存储的取较大者
2. 构建评分输入并计算分数
3. 解析组织策略并检测缺口
4. 整体替换缺口集合（全删全建，非增量）
5. PR 处于 OPEN 时推导新的生命周期状态
6. 分数、状态、规范化引用与缺口替换在同一事务中提交

全部计算在内存完成后一次提交，并在记录级锁内执行，读者不会看到分数与缺口不匹配的中间状态。
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from decisionledger.core.locks import RecordLockRegistry, get_record_locks
from decisionledger.database.audit_log_models import AuditEventType
from decisionledger.database.models import (
    DecisionEvidenceRecord,
    EvidenceGap,
    PRState,
    RecordStatus,
    ReviewState,
)
from decisionledger.governance.check_conclusion import CheckGap
from decisionledger.governance.evidence_score import (
    ScoreBreakdown,
    ScoreInput,
    calculate_score_breakdown,
)
from decisionledger.governance.extractor import extract_chat_links, extract_ticket_links
from decisionledger.governance.gap_detector import DetectedGap, detect_gaps, has_blocking_gaps
from decisionledger.governance.policy_loader import PolicyConfig, resolve_gap_policy
from decisionledger.services.audit_service import write_audit_event
from decisionledger.services.lookup import coerce_uuid, get_record

logger = logging.getLogger(__name__)

CONFIRMED_SCORE_THRESHOLD = 75
NEEDS_REVIEW_SCORE_THRESHOLD = 50


class EvidenceSignals(BaseModel):
    """从记录收集的证据信号与规范化引用"""
    model_config = ConfigDict(extra="forbid")

    score_input: ScoreInput
    ticket_links: list[str] = Field(default_factory=list)
    chat_threads: list[str] = Field(default_factory=list)


class RecalculateResult(BaseModel):
    """重算结果"""
    model_config = ConfigDict(extra="forbid")

    evidence_score: int
    breakdown: ScoreBreakdown
    gaps: list[DetectedGap] = Field(default_factory=list)
    score_input: ScoreInput
    status: RecordStatus


def collect_evidence_signals(record: DecisionEvidenceRecord) -> EvidenceSignals:
    """从记录当前数据构建评分输入

    工单/聊天引用取“已存储”与“从描述重新提取”中数量较大的一组。
    """
    description = (record.description or "").strip()
    stored_tickets = list(record.ticket_links or [])
    stored_chats = list(record.chat_threads or [])
    extracted_tickets = extract_ticket_links(description)
    extracted_chats = extract_chat_links(description)

    ticket_links = extracted_tickets if len(extracted_tickets) > len(stored_tickets) else stored_tickets
    chat_threads = extracted_chats if len(extracted_chats) > len(stored_chats) else stored_chats

    reviews = list(record.reviews or [])
    score_input = ScoreInput(
        has_description=len(description) > 0,
        description_length=len(description),
        ticket_count=len(ticket_links),
        review_count=len(reviews),
        approved_review_count=sum(1 for r in reviews if r.state == ReviewState.APPROVED),
        has_chat_context=len(chat_threads) > 0,
    )
    return EvidenceSignals(
        score_input=score_input,
        ticket_links=ticket_links,
        chat_threads=chat_threads,
    )


def derive_record_status(
    current: RecordStatus,
    pr_state: PRState,
    score: int,
    gaps: Sequence[DetectedGap],
) -> RecordStatus:
    """推导生命周期状态

    仅在 PR 为 OPEN 时变化；MERGED/CLOSED 的状态由关闭流程负责。
    """
    if pr_state != PRState.OPEN:
        return current
    if score >= CONFIRMED_SCORE_THRESHOLD and not gaps:
        return RecordStatus.CONFIRMED
    if score < NEEDS_REVIEW_SCORE_THRESHOLD or has_blocking_gaps(list(gaps)):
        return RecordStatus.NEEDS_REVIEW
    return RecordStatus.PENDING


def recalculate_gaps_and_score(
    db: Session,
    der_id: UUID | str,
    *,
    policy: PolicyConfig | None = None,
    locks: RecordLockRegistry | None = None,
) -> Optional[RecalculateResult]:
    """重算记录的分数与缺口

    Args:
        db: 数据库会话
        der_id: 决策证据记录 ID
        policy: 策略配置（可选，默认从文件加载）
        locks: 记录锁表（可选，默认进程级单例）

    Returns:
        RecalculateResult；记录不存在时返回 None
    """
    record_id = coerce_uuid(der_id)
    if record_id is None:
        logger.info(f"Invalid record id for recalculation: {der_id}")
        return None

    locks = locks or get_record_locks()
    with locks.hold(record_id):
        record = get_record(db, record_id)
        if record is None:
            logger.info(f"Record not found for recalculation: {der_id}")
            return None
        db.refresh(record)

        previous_score = record.evidence_score
        signals = collect_evidence_signals(record)
        breakdown = calculate_score_breakdown(signals.score_input)
        org_settings = record.organization.settings if record.organization else None
        gap_policy = resolve_gap_policy(org_settings, policy)
        gaps = detect_gaps(signals.score_input, gap_policy)
        new_status = derive_record_status(record.status, record.pr_state, breakdown.total, gaps)

        try:
            db.query(EvidenceGap).filter(EvidenceGap.der_id == record.id).delete(
                synchronize_session=False
            )
            for position, gap in enumerate(gaps):
                db.add(EvidenceGap(
                    der_id=record.id,
                    position=position,
                    type=gap.type,
                    severity=gap.severity,
                    message=gap.message,
                    suggestion=gap.suggestion,
                    resolved=False,
                ))
            record.evidence_score = breakdown.total
            record.status = new_status
            record.ticket_links = signals.ticket_links
            record.chat_threads = signals.chat_threads
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Recalculation failed for record {record_id}: {e}")
            raise

    logger.info(
        f"Record {record_id} recalculated: score {previous_score} -> {breakdown.total}, "
        f"status={new_status.value}, gaps={[g.type.value for g in gaps]}"
    )

    write_audit_event(
        db,
        event_type=AuditEventType.RECORD_RECALCULATED,
        record_id=record_id,
        status=new_status.value,
        details={
            "evidence_score": breakdown.total,
            "previous_score": previous_score,
            "gaps": [g.type.value for g in gaps],
            "policy": gap_policy.model_dump(),
        },
    )

    return RecalculateResult(
        evidence_score=breakdown.total,
        breakdown=breakdown,
        gaps=gaps,
        score_input=signals.score_input,
        status=new_status,
    )


def get_gaps_for_check(db: Session, der_id: UUID | str) -> list[CheckGap]:
    """获取记录的缺口（用于外部检查报告）"""
    record = get_record(db, der_id)
    if record is None:
        return []
    return [CheckGap.from_gap(g) for g in record.gaps]
