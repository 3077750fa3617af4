"""DecisionLedger - Governance Layer

治理层：纯函数的评分、缺口检测、合规评估与检查结论。

核心组件：
- evidence_score: 证据评分（0-100）
- gap_detector: 缺口检测
- policy_loader: 默认策略加载与组织策略解析
- compliance: 框架目录与合规评估
- check_conclusion: 外部检查结论（success/neutral/failure）
- canonical: 封存快照的规范化序列化与哈希
"""

from decisionledger.governance.check_conclusion import (
    CheckConclusion,
    CheckGap,
    CheckReport,
    build_check_report,
    determine_conclusion,
)
from decisionledger.governance.evidence_score import (
    ScoreBreakdown,
    ScoreInput,
    calculate_evidence_score,
    calculate_score_breakdown,
    get_score_label,
)
from decisionledger.governance.gap_detector import (
    DetectedGap,
    GapPolicy,
    GapSeverity,
    GapType,
    detect_gaps,
)
from decisionledger.governance.judgments import (
    AuditReadiness,
    DocQuality,
    IntentAlignment,
    QualitativeJudgments,
)
from decisionledger.governance.policy_loader import (
    PolicyConfig,
    clear_policy_cache,
    get_policy,
    load_policy,
    resolve_gap_policy,
)

__all__ = [
    # Check conclusion
    "CheckConclusion",
    "CheckGap",
    "CheckReport",
    "build_check_report",
    "determine_conclusion",
    # Score
    "ScoreBreakdown",
    "ScoreInput",
    "calculate_evidence_score",
    "calculate_score_breakdown",
    "get_score_label",
    # Gaps
    "DetectedGap",
    "GapPolicy",
    "GapSeverity",
    "GapType",
    "detect_gaps",
    # Judgments
    "AuditReadiness",
    "DocQuality",
    "IntentAlignment",
    "QualitativeJudgments",
    # Policy
    "PolicyConfig",
    "clear_policy_cache",
    "get_policy",
    "load_policy",
    "resolve_gap_policy",
]
