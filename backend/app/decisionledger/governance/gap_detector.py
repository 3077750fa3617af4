"""DecisionLedger - Gap Detector (缺口检测)

根据证据信号与组织策略检测文档缺口。

规则（相互独立，按检测顺序输出）：
1. 无描述且策略要求 → MISSING_DESCRIPTION (HIGH)
   有描述但 < 50 字符 → INSUFFICIENT_CONTEXT (LOW)
2. 无工单且策略要求 → MISSING_TICKET (MEDIUM)
3. 无评审 → MISSING_REVIEW (MEDIUM)
4. 批准数 < 最少评审人数 → MISSING_APPROVAL（差额 >= 2 为 HIGH，否则 MEDIUM）
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from decisionledger.governance.evidence_score import ScoreInput

SHORT_DESCRIPTION_THRESHOLD = 50


class GapType(str, Enum):
    """缺口类型"""
    MISSING_DESCRIPTION = "MISSING_DESCRIPTION"
    MISSING_TICKET = "MISSING_TICKET"
    MISSING_REVIEW = "MISSING_REVIEW"
    MISSING_APPROVAL = "MISSING_APPROVAL"
    INSUFFICIENT_CONTEXT = "INSUFFICIENT_CONTEXT"
    NO_TESTING_EVIDENCE = "NO_TESTING_EVIDENCE"


class GapSeverity(str, Enum):
    """缺口严重度"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def is_blocking(self) -> bool:
        return self in (GapSeverity.HIGH, GapSeverity.CRITICAL)


class GapPolicy(BaseModel):
    """缺口检测策略（组织级）"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    require_description: bool = Field(default=True, description="是否要求 PR 描述")
    require_ticket_link: bool = Field(default=True, description="是否要求关联工单")
    min_reviewers: int = Field(default=1, ge=0, description="最少批准人数")


class DetectedGap(BaseModel):
    """检测到的缺口"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    type: GapType
    severity: GapSeverity
    message: str
    suggestion: str


def detect_gaps(score_input: ScoreInput, policy: GapPolicy) -> list[DetectedGap]:
    """检测缺口

    Args:
        score_input: 证据信号
        policy: 缺口检测策略

    Returns:
        按检测顺序排列的缺口列表（每条规则最多触发一次）
    """
    gaps: list[DetectedGap] = []

    if policy.require_description and not score_input.has_description:
        gaps.append(DetectedGap(
            type=GapType.MISSING_DESCRIPTION,
            severity=GapSeverity.HIGH,
            message="PR description is empty",
            suggestion="Add a description explaining what this change does and why",
        ))
    elif score_input.has_description and score_input.description_length < SHORT_DESCRIPTION_THRESHOLD:
        gaps.append(DetectedGap(
            type=GapType.INSUFFICIENT_CONTEXT,
            severity=GapSeverity.LOW,
            message="PR description is very short",
            suggestion="Consider adding more context about the changes and their purpose",
        ))

    if policy.require_ticket_link and score_input.ticket_count == 0:
        gaps.append(DetectedGap(
            type=GapType.MISSING_TICKET,
            severity=GapSeverity.MEDIUM,
            message="No ticket or issue linked",
            suggestion="Link a Jira ticket, Linear issue, or GitHub issue",
        ))

    if score_input.review_count == 0:
        gaps.append(DetectedGap(
            type=GapType.MISSING_REVIEW,
            severity=GapSeverity.MEDIUM,
            message="No code reviews yet",
            suggestion="Request review from team members",
        ))

    if score_input.approved_review_count < policy.min_reviewers:
        needed = policy.min_reviewers - score_input.approved_review_count
        gaps.append(DetectedGap(
            type=GapType.MISSING_APPROVAL,
            severity=GapSeverity.HIGH if needed >= 2 else GapSeverity.MEDIUM,
            message=f"Needs {needed} more approval{'s' if needed != 1 else ''}",
            suggestion="Request review from team members with approval rights",
        ))

    return gaps


def has_blocking_gaps(gaps: list[DetectedGap]) -> bool:
    """是否存在 HIGH/CRITICAL 缺口"""
    return any(g.severity.is_blocking for g in gaps)
