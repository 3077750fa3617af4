"""DecisionLedger - Compliance (合规评估)

核心组件：
- frameworks: 框架目录（YAML 数据驱动）
- evidence: 合规证据快照
- engine: 与框架无关的评估引擎
"""

from decisionledger.governance.compliance.engine import (
    ComplianceResult,
    ComplianceSummary,
    ControlResult,
    ControlStatus,
    OverallStatus,
    RequirementCheck,
    evaluate_compliance,
    evaluate_control,
    evaluate_framework,
    overall_status_for,
    summarize_compliance,
)
from decisionledger.governance.compliance.evidence import (
    ComplianceEvidence,
    build_compliance_evidence,
)
from decisionledger.governance.compliance.frameworks import (
    ControlDefinition,
    FrameworkCatalog,
    FrameworkDefinition,
    clear_framework_cache,
    get_framework_catalog,
    load_frameworks,
)

__all__ = [
    "ComplianceResult",
    "ComplianceSummary",
    "ControlResult",
    "ControlStatus",
    "OverallStatus",
    "RequirementCheck",
    "evaluate_compliance",
    "evaluate_control",
    "evaluate_framework",
    "overall_status_for",
    "summarize_compliance",
    "ComplianceEvidence",
    "build_compliance_evidence",
    "ControlDefinition",
    "FrameworkCatalog",
    "FrameworkDefinition",
    "clear_framework_cache",
    "get_framework_catalog",
    "load_frameworks",
]
