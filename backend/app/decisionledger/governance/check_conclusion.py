"""DecisionLedger - Check Conclusion (检查结论)

基于分数、未解决缺口与审计就绪度给出外部检查结论：success / neutral / failure

规则：
1. 分数 < 40，或存在 CRITICAL 缺口，或审计就绪度为 NOT_READY → failure
2. 分数 >= 60，且无 HIGH/CRITICAL 缺口，且审计就绪度不是 NOT_READY → success
3. 其余 → neutral
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from decisionledger.governance.gap_detector import GapSeverity, GapType
from decisionledger.governance.judgments import AuditReadiness, DocQuality, coerce_judgment

logger = logging.getLogger(__name__)

FAILURE_SCORE_THRESHOLD = 40
SUCCESS_SCORE_THRESHOLD = 60


class CheckConclusion(str, Enum):
    """检查结论"""
    SUCCESS = "success"
    NEUTRAL = "neutral"
    FAILURE = "failure"


class CheckGap(BaseModel):
    """参与结论计算的缺口"""
    model_config = ConfigDict(extra="ignore")

    type: GapType
    severity: GapSeverity
    message: str
    suggestion: Optional[str] = None
    resolved: bool = False

    @classmethod
    def from_gap(cls, gap: Any) -> "CheckGap":
        """从 ORM 缺口或 DetectedGap 转换"""
        return cls(
            type=gap.type,
            severity=gap.severity,
            message=gap.message,
            suggestion=getattr(gap, "suggestion", None),
            resolved=bool(getattr(gap, "resolved", False)),
        )


class CheckReport(BaseModel):
    """检查报告"""
    model_config = ConfigDict(extra="forbid")

    conclusion: CheckConclusion
    title: str
    summary: str
    text: str
    triggered_rules: list[str] = Field(default_factory=list)


def _triggered_rules(
    score: int,
    unresolved_gaps: Sequence[CheckGap],
    audit_readiness: AuditReadiness,
) -> list[str]:
    rules: list[str] = []
    if score < FAILURE_SCORE_THRESHOLD:
        rules.append("score_below_minimum")
    if any(g.severity == GapSeverity.CRITICAL for g in unresolved_gaps):
        rules.append("critical_gap")
    elif any(g.severity == GapSeverity.HIGH for g in unresolved_gaps):
        rules.append("high_severity_gap")
    if audit_readiness == AuditReadiness.NOT_READY:
        rules.append("audit_not_ready")
    if score >= SUCCESS_SCORE_THRESHOLD:
        rules.append("score_meets_requirement")
    return rules


def determine_conclusion(
    score: int,
    unresolved_gaps: Sequence[CheckGap],
    audit_readiness: Any = None,
) -> CheckConclusion:
    """确定检查结论

    Args:
        score: 证据分数
        unresolved_gaps: 未解决缺口
        audit_readiness: 审计就绪度（可选，None/未知值视为 UNKNOWN）
    """
    readiness = coerce_judgment(AuditReadiness, audit_readiness)
    has_critical = any(g.severity == GapSeverity.CRITICAL for g in unresolved_gaps)
    has_blocking = any(g.severity.is_blocking for g in unresolved_gaps)

    if score < FAILURE_SCORE_THRESHOLD or has_critical or readiness == AuditReadiness.NOT_READY:
        return CheckConclusion.FAILURE

    if score >= SUCCESS_SCORE_THRESHOLD and not has_blocking:
        return CheckConclusion.SUCCESS

    return CheckConclusion.NEUTRAL


_TITLES = {
    CheckConclusion.SUCCESS: "Documentation Complete",
    CheckConclusion.NEUTRAL: "Review Recommended",
    CheckConclusion.FAILURE: "Documentation Required",
}

_MISSING_LINES = {
    GapType.MISSING_DESCRIPTION: "**No PR description** - Add a description explaining what changed and why",
    GapType.MISSING_TICKET: "**No ticket linked** - Link a Jira, Linear, or GitHub issue",
    GapType.MISSING_REVIEW: "**No code review** - Request a review from team members",
    GapType.MISSING_APPROVAL: "**No approval** - Get approval from a reviewer",
    GapType.INSUFFICIENT_CONTEXT: "**Description too short** - Add more context about why this change is needed",
}

_DOC_QUALITY_LABELS = {
    DocQuality.COMPLETE: "Complete",
    DocQuality.PARTIAL: "Partial",
    DocQuality.INSUFFICIENT: "Insufficient",
}

_READINESS_LABELS = {
    AuditReadiness.READY: "Ready",
    AuditReadiness.NEEDS_WORK: "Needs Work",
    AuditReadiness.NOT_READY: "Not Ready",
}

_DOC_QUALITY_DESCRIPTIONS = {
    DocQuality.COMPLETE: "The PR description clearly explains what changed and why. Good context for auditors.",
    DocQuality.PARTIAL: "Some documentation is present but missing key details about the purpose or context.",
    DocQuality.INSUFFICIENT: "The PR lacks sufficient documentation. Auditors would have questions about this change.",
}

_READINESS_DESCRIPTIONS = {
    AuditReadiness.READY: "This change has sufficient documentation for compliance audit purposes.",
    AuditReadiness.NEEDS_WORK: "Some additional context or documentation would help auditors understand this change.",
    AuditReadiness.NOT_READY: "This change needs more documentation before it can be reviewed by auditors.",
}

_SEVERITY_LABELS = {
    GapSeverity.CRITICAL: "Critical",
    GapSeverity.HIGH: "High",
    GapSeverity.MEDIUM: "Medium",
    GapSeverity.LOW: "Low",
}


def _build_summary(
    score: int,
    conclusion: CheckConclusion,
    unresolved_gaps: Sequence[CheckGap],
    doc_quality: DocQuality,
    audit_readiness: AuditReadiness,
    record_url: str | None,
) -> str:
    blocking = [g for g in unresolved_gaps if g.severity.is_blocking]
    lines: list[str] = [f"## {_TITLES[conclusion]}", ""]

    if conclusion == CheckConclusion.SUCCESS:
        lines.append(f"This PR has sufficient documentation for compliance. Score: **{score}/100**")
    elif conclusion == CheckConclusion.NEUTRAL:
        lines.append(f"This PR has some documentation gaps. Score: **{score}/100**")
    else:
        lines.append(f"This PR needs more documentation before merging. Score: **{score}/100**")
    lines.append("")

    if conclusion == CheckConclusion.SUCCESS:
        lines.append("### What's Good")
        lines.append("")
        lines.append(f"- Evidence score meets requirements ({SUCCESS_SCORE_THRESHOLD}+)")
        lines.append("- No critical documentation gaps")
        if doc_quality == DocQuality.COMPLETE:
            lines.append("- Documentation is complete and clear")
        if audit_readiness == AuditReadiness.READY:
            lines.append("- Ready for audit review")
        lines.append("")

    if conclusion != CheckConclusion.SUCCESS and unresolved_gaps:
        lines.append("### What's Missing")
        lines.append("")
        # 同类型缺口只显示一次
        first_by_type: dict[GapType, CheckGap] = {}
        for gap in unresolved_gaps:
            first_by_type.setdefault(gap.type, gap)
        for gap_type, gap in first_by_type.items():
            icon = "!" if gap.severity.is_blocking else "-"
            lines.append(f"- {icon} {_MISSING_LINES.get(gap_type, gap.message)}")
        lines.append("")

    if conclusion == CheckConclusion.FAILURE:
        lines.append("### Why This Check Failed")
        lines.append("")
        if score < FAILURE_SCORE_THRESHOLD:
            lines.append(f"- Evidence score ({score}) is below minimum ({FAILURE_SCORE_THRESHOLD})")
        if blocking:
            lines.append(f"- {len(blocking)} critical documentation gap(s) need to be addressed")
        if audit_readiness == AuditReadiness.NOT_READY:
            lines.append("- Documentation is not ready for audit")
        lines.append("")

    if score >= SUCCESS_SCORE_THRESHOLD:
        score_status = "Pass"
    elif score >= FAILURE_SCORE_THRESHOLD:
        score_status = "Partial"
    else:
        score_status = "Fail"
    gap_status = "None" if not unresolved_gaps else f"{len(unresolved_gaps)} gap(s)"

    lines.extend([
        "### Documentation Status",
        "",
        "| Check | Status |",
        "|-------|--------|",
        f"| Evidence Score | {score_status} {score}/100 |",
        f"| Documentation Gaps | {gap_status} |",
    ])
    if doc_quality in _DOC_QUALITY_LABELS:
        lines.append(f"| Documentation Quality | {_DOC_QUALITY_LABELS[doc_quality]} |")
    if audit_readiness in _READINESS_LABELS:
        lines.append(f"| Audit Readiness | {_READINESS_LABELS[audit_readiness]} |")

    if record_url:
        lines.extend(["", "---", "", f"**[View Full Evidence Report]({record_url})**"])

    return "\n".join(lines) + "\n"


def _build_text(
    pr_title: str,
    unresolved_gaps: Sequence[CheckGap],
    doc_quality: DocQuality,
    audit_readiness: AuditReadiness,
    record_url: str | None,
) -> str:
    lines: list[str] = [f"# {pr_title}", ""]

    if doc_quality in _DOC_QUALITY_LABELS or audit_readiness in _READINESS_LABELS:
        lines.extend(["## Documentation Assessment", ""])
        if doc_quality in _DOC_QUALITY_LABELS:
            lines.append(f"**Documentation Quality**: {doc_quality.value}")
            lines.append(f"> {_DOC_QUALITY_DESCRIPTIONS[doc_quality]}")
            lines.append("")
        if audit_readiness in _READINESS_LABELS:
            lines.append(f"**Audit Readiness**: {audit_readiness.value}")
            lines.append(f"> {_READINESS_DESCRIPTIONS[audit_readiness]}")
            lines.append("")

    if unresolved_gaps:
        lines.extend(["## Documentation Gaps", ""])
        for index, gap in enumerate(unresolved_gaps, start=1):
            lines.append(f"### {index}. {gap.message}")
            lines.append("")
            lines.append(f"**Priority**: {_SEVERITY_LABELS[gap.severity]}")
            if gap.suggestion:
                lines.append(f"**How to fix**: {gap.suggestion}")
            lines.append("")
    else:
        lines.extend([
            "## All Documentation Requirements Met",
            "",
            "This PR has sufficient documentation for compliance purposes.",
            "",
        ])

    lines.extend([
        "## How to Improve Your Score",
        "",
        "| Action | Points |",
        "|--------|--------|",
        "| Add detailed PR description explaining what and why | +25 |",
        "| Link a ticket (Jira, Linear, GitHub Issue) | +25 |",
        "| Get a code review | +15 |",
        "| Get an approval | +20 |",
        "| Add chat thread context | +10 |",
        "",
    ])

    if record_url:
        lines.extend([
            "---",
            "",
            f"**[View Full Evidence Report]({record_url})** - See complete audit trail and compliance details.",
        ])

    return "\n".join(lines) + "\n"


def build_check_report(
    score: int,
    gaps: Sequence[Any],
    pr_title: str,
    *,
    doc_quality: Any = None,
    audit_readiness: Any = None,
    record_url: str | None = None,
) -> CheckReport:
    """构建检查报告（结论 + 标题 + 摘要 + 详情）

    Args:
        score: 证据分数
        gaps: 缺口（ORM 缺口、DetectedGap 或 CheckGap；已解决的会被过滤）
        pr_title: PR 标题
        doc_quality: 文档质量（可选）
        audit_readiness: 审计就绪度（可选）
        record_url: 完整报告链接（可选）
    """
    check_gaps = [g if isinstance(g, CheckGap) else CheckGap.from_gap(g) for g in gaps]
    unresolved = [g for g in check_gaps if not g.resolved]
    quality = coerce_judgment(DocQuality, doc_quality)
    readiness = coerce_judgment(AuditReadiness, audit_readiness)

    conclusion = determine_conclusion(score, unresolved, readiness)
    title = f"{_TITLES[conclusion]} - Score: {score}/100"

    logger.info(
        f"Check conclusion: {conclusion.value.upper()} (score: {score}, "
        f"gaps: {len(unresolved)}, docQuality: {quality.value}, auditReady: {readiness.value})"
    )

    return CheckReport(
        conclusion=conclusion,
        title=title,
        summary=_build_summary(score, conclusion, unresolved, quality, readiness, record_url),
        text=_build_text(pr_title, unresolved, quality, readiness, record_url),
        triggered_rules=_triggered_rules(score, unresolved, readiness),
    )
