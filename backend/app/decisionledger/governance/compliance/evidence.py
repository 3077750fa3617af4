"""DecisionLedger - Compliance Evidence

合规评估使用的证据快照。与具体框架无关：同一份快照分别对每个启用框架的 control 检查。
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from decisionledger.governance.judgments import QualitativeJudgments

APPROVED_STATE = "APPROVED"


class ComplianceEvidence(BaseModel):
    """合规证据快照"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    has_description: bool = False
    description_length: int = Field(default=0, ge=0)
    ticket_count: int = Field(default=0, ge=0)
    review_count: int = Field(default=0, ge=0)
    approved_review_count: int = Field(default=0, ge=0)
    # 作者出现在批准人之中（职责分离违规），独立标志，不并入其他布尔值
    has_self_approval: bool = False
    files_changed: list[str] = Field(default_factory=list)
    judgments: QualitativeJudgments = Field(default_factory=QualitativeJudgments)

    @property
    def has_risk_assessment(self) -> bool:
        return self.judgments.is_assessed


def _state_value(state: Any) -> str:
    return str(getattr(state, "value", state))


def build_compliance_evidence(record: Any) -> ComplianceEvidence:
    """从决策证据记录构建合规证据

    Args:
        record: DecisionEvidenceRecord（或具有相同属性的对象）
    """
    description = (record.description or "").strip()
    reviews = list(record.reviews or [])
    approvals = [r for r in reviews if _state_value(r.state) == APPROVED_STATE]

    return ComplianceEvidence(
        has_description=len(description) > 0,
        description_length=len(description),
        ticket_count=len(record.ticket_links or []),
        review_count=len(reviews),
        approved_review_count=len(approvals),
        has_self_approval=any(r.author == record.pr_author for r in approvals),
        files_changed=list(record.files_changed or []),
        judgments=QualitativeJudgments.from_values(
            record.doc_quality,
            record.intent_alignment,
            record.audit_readiness,
        ),
    )
