"""DecisionLedger - Compliance Engine (合规评估引擎)

基于框架目录评估合规证据：PASS / WARNING / FAIL。

规则：
1. 每个 control 按其声明的标志生成需求检查（RequirementCheck）
2. 任一必需检查未满足 → FAIL
3. 必需检查全部满足，但建议检查（风险评估标记）未满足 → WARNING
4. 其他 → PASS

框架得分 = round(100 × 通过 control 数 / control 总数)，
>= 80 为 COMPLIANT，>= 50 为 PARTIAL，否则 NON_COMPLIANT。
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from decisionledger.governance.compliance.evidence import ComplianceEvidence
from decisionledger.governance.compliance.frameworks import (
    ControlDefinition,
    FrameworkCatalog,
    FrameworkDefinition,
    get_framework_catalog,
)

logger = logging.getLogger(__name__)

COMPLIANT_THRESHOLD = 80
PARTIAL_THRESHOLD = 50


class ControlStatus(str, Enum):
    """Control 评估结果"""
    PASS = "PASS"
    WARNING = "WARNING"
    FAIL = "FAIL"


class OverallStatus(str, Enum):
    """框架整体合规状态"""
    COMPLIANT = "COMPLIANT"
    PARTIAL = "PARTIAL"
    NON_COMPLIANT = "NON_COMPLIANT"


class RequirementCheck(BaseModel):
    """单项需求检查"""
    model_config = ConfigDict(extra="forbid")

    name: str
    required: bool
    met: bool
    detail: str


class ControlResult(BaseModel):
    """Control 评估结果"""
    model_config = ConfigDict(extra="forbid")

    control_id: str
    control_name: str
    category: str
    status: ControlStatus
    requirements: list[RequirementCheck] = Field(default_factory=list)
    recommendation: Optional[str] = None

    @property
    def unmet_requirements(self) -> list[RequirementCheck]:
        return [r for r in self.requirements if not r.met]


class ComplianceResult(BaseModel):
    """框架评估结果"""
    model_config = ConfigDict(extra="forbid")

    framework_id: str
    framework_name: str
    framework_icon: str
    overall_status: OverallStatus
    score: int = Field(ge=0, le=100)
    control_results: list[ControlResult] = Field(default_factory=list)

    @property
    def controls_passed(self) -> int:
        return sum(1 for c in self.control_results if c.status == ControlStatus.PASS)

    @property
    def controls_total(self) -> int:
        return len(self.control_results)


class FrameworkSummary(BaseModel):
    """单框架摘要"""
    framework_id: str
    framework_name: str
    framework_icon: str
    overall_status: OverallStatus
    score: int
    controls_passed: int
    controls_total: int


class ComplianceSummary(BaseModel):
    """多框架汇总"""
    total_frameworks: int = 0
    compliant_frameworks: int = 0
    partial_frameworks: int = 0
    non_compliant_frameworks: int = 0
    results: list[FrameworkSummary] = Field(default_factory=list)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _build_requirement_checks(
    control: ControlDefinition,
    evidence: ComplianceEvidence,
) -> list[tuple[RequirementCheck, str]]:
    """按 control 声明的标志生成 (检查, 修复提示) 列表"""
    checks: list[tuple[RequirementCheck, str]] = []

    if control.requires_description:
        checks.append((
            RequirementCheck(
                name="Change is documented",
                required=True,
                met=evidence.has_description,
                detail=(
                    f"Description provided ({evidence.description_length} chars)"
                    if evidence.has_description
                    else "No description provided"
                ),
            ),
            "Add a PR description explaining what changed and why.",
        ))

    if control.requires_ticket_link:
        checks.append((
            RequirementCheck(
                name="Change is linked to business requirement",
                required=True,
                met=evidence.ticket_count > 0,
                detail=(
                    f"{_plural(evidence.ticket_count, 'ticket')} linked"
                    if evidence.ticket_count > 0
                    else "No ticket linked - cannot trace to business requirement"
                ),
            ),
            "Link a tracking ticket to make the change traceable.",
        ))

    if control.requires_review:
        checks.append((
            RequirementCheck(
                name="Code review performed",
                required=True,
                met=evidence.review_count > 0,
                detail=(
                    f"{_plural(evidence.review_count, 'review')} completed"
                    if evidence.review_count > 0
                    else "No code reviews found"
                ),
            ),
            "Request a code review before merging.",
        ))

    if control.requires_approval:
        checks.append((
            RequirementCheck(
                name="Change is approved",
                required=True,
                met=evidence.approved_review_count > 0,
                detail=(
                    f"{_plural(evidence.approved_review_count, 'approval')}"
                    if evidence.approved_review_count > 0
                    else "No approvals - change not formally authorized"
                ),
            ),
            "Obtain a formal approval for the change.",
        ))

    if control.min_reviewers > 0:
        checks.append((
            RequirementCheck(
                name=f"Minimum {_plural(control.min_reviewers, 'approving reviewer')}",
                required=True,
                met=evidence.approved_review_count >= control.min_reviewers,
                detail=f"Has {evidence.approved_review_count} of {control.min_reviewers} required approvals",
            ),
            f"Obtain at least {_plural(control.min_reviewers, 'approval')}.",
        ))

    if control.segregation_of_duties:
        checks.append((
            RequirementCheck(
                name="Segregation of duties maintained",
                required=True,
                met=not evidence.has_self_approval,
                detail=(
                    "VIOLATION: Author approved their own change"
                    if evidence.has_self_approval
                    else "Author did not approve their own change"
                ),
            ),
            "Have the change approved by someone other than the author.",
        ))

    if control.sensitive_paths:
        patterns = [p.lower() for p in control.sensitive_paths]
        sensitive_files = [
            f for f in evidence.files_changed
            if any(p in f.lower() for p in patterns)
        ]
        if sensitive_files:
            checks.append((
                RequirementCheck(
                    name="Enhanced review for sensitive changes",
                    required=True,
                    met=evidence.review_count >= control.sensitive_min_reviewers,
                    detail=(
                        f"Sensitive files modified ({len(sensitive_files)}): requires "
                        f"{control.sensitive_min_reviewers}+ reviewers, has {evidence.review_count}"
                    ),
                ),
                f"This change touches sensitive files - ensure {control.sensitive_min_reviewers}+ reviewers.",
            ))

    if control.requires_risk_assessment:
        quality = evidence.judgments.doc_quality
        checks.append((
            RequirementCheck(
                name="Risk assessment performed",
                required=False,
                met=evidence.has_risk_assessment,
                detail=(
                    f"Documentation quality: {quality.value}"
                    if evidence.has_risk_assessment
                    else "No risk assessment available"
                ),
            ),
            "Record a risk assessment for this change.",
        ))

    return checks


def evaluate_control(control: ControlDefinition, evidence: ComplianceEvidence) -> ControlResult:
    """评估单个 control"""
    checks = _build_requirement_checks(control, evidence)
    requirements = [check for check, _ in checks]

    if any(r.required and not r.met for r in requirements):
        status = ControlStatus.FAIL
    elif any(not r.met for r in requirements):
        status = ControlStatus.WARNING
    else:
        status = ControlStatus.PASS

    recommendation = None
    if status != ControlStatus.PASS:
        hints = [hint for check, hint in checks if not check.met]
        recommendation = control.recommendation or " ".join(hints)

    return ControlResult(
        control_id=control.control_id,
        control_name=control.name,
        category=control.category,
        status=status,
        requirements=requirements,
        recommendation=recommendation,
    )


def framework_score(passed: int, total: int) -> int:
    """round(100 × passed / total)，四舍五入取整；无 control 时为 0"""
    if total <= 0:
        return 0
    return int(math.floor(100 * passed / total + 0.5))


def overall_status_for(score: int) -> OverallStatus:
    """按得分归入整体状态"""
    if score >= COMPLIANT_THRESHOLD:
        return OverallStatus.COMPLIANT
    if score >= PARTIAL_THRESHOLD:
        return OverallStatus.PARTIAL
    return OverallStatus.NON_COMPLIANT


def evaluate_framework(framework: FrameworkDefinition, evidence: ComplianceEvidence) -> ComplianceResult:
    """评估单个框架"""
    control_results = [evaluate_control(c, evidence) for c in framework.controls]
    passed = sum(1 for c in control_results if c.status == ControlStatus.PASS)
    score = framework_score(passed, len(control_results))

    return ComplianceResult(
        framework_id=framework.short_code,
        framework_name=framework.name,
        framework_icon=framework.icon,
        overall_status=overall_status_for(score),
        score=score,
        control_results=control_results,
    )


def evaluate_compliance(
    evidence: ComplianceEvidence,
    enabled_frameworks: Iterable[str],
    catalog: FrameworkCatalog | None = None,
) -> list[ComplianceResult]:
    """对所有启用框架分别评估同一份证据

    Args:
        evidence: 合规证据快照
        enabled_frameworks: 启用的框架代码（结果顺序与之一致，重复代码只评估一次）
        catalog: 框架目录（可选，默认使用缓存目录）

    Returns:
        每个已知框架一条评估结果；未知代码记录警告后跳过
    """
    if catalog is None:
        catalog = get_framework_catalog()

    results: list[ComplianceResult] = []
    for code in dict.fromkeys(enabled_frameworks):
        framework = catalog.get(code)
        if framework is None:
            logger.warning(f"Unknown compliance framework code: {code}, skipping")
            continue
        result = evaluate_framework(framework, evidence)
        logger.debug(
            f"Framework {code}: {result.overall_status.value} "
            f"({result.controls_passed}/{result.controls_total} controls passed)"
        )
        results.append(result)

    return results


def summarize_compliance(results: list[ComplianceResult]) -> ComplianceSummary:
    """汇总多框架评估结果"""
    compliant = sum(1 for r in results if r.overall_status == OverallStatus.COMPLIANT)
    partial = sum(1 for r in results if r.overall_status == OverallStatus.PARTIAL)

    return ComplianceSummary(
        total_frameworks=len(results),
        compliant_frameworks=compliant,
        partial_frameworks=partial,
        non_compliant_frameworks=len(results) - compliant - partial,
        results=[
            FrameworkSummary(
                framework_id=r.framework_id,
                framework_name=r.framework_name,
                framework_icon=r.framework_icon,
                overall_status=r.overall_status,
                score=r.score,
                controls_passed=r.controls_passed,
                controls_total=r.controls_total,
            )
            for r in results
        ],
    )
