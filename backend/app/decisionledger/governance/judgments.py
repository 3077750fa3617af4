"""DecisionLedger - Qualitative Judgments

外部分析器（例如 LLM）给出的三项定性判断。

每个枚举都带 UNKNOWN 状态：分析器缺席或失败时统一落到 UNKNOWN，
评分与缺口检测不依赖这些判断，合规评估把 UNKNOWN 视为“未知”而非失败。
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class DocQuality(str, Enum):
    """文档质量"""
    COMPLETE = "COMPLETE"
    PARTIAL = "PARTIAL"
    INSUFFICIENT = "INSUFFICIENT"
    UNKNOWN = "UNKNOWN"


class IntentAlignment(str, Enum):
    """意图一致性"""
    ALIGNED = "ALIGNED"
    UNCLEAR = "UNCLEAR"
    MISALIGNED = "MISALIGNED"
    UNKNOWN = "UNKNOWN"


class AuditReadiness(str, Enum):
    """审计就绪度"""
    READY = "READY"
    NEEDS_WORK = "NEEDS_WORK"
    NOT_READY = "NOT_READY"
    UNKNOWN = "UNKNOWN"


_E = TypeVar("_E", DocQuality, IntentAlignment, AuditReadiness)


def coerce_judgment(enum_cls: type[_E], value: Any) -> _E:
    """把任意输入（None、字符串、枚举）收敛为枚举值，无法识别时返回 UNKNOWN"""
    if value is None:
        return enum_cls.UNKNOWN
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(getattr(value, "value", value)).upper())
    except ValueError:
        logger.warning(f"Unrecognized {enum_cls.__name__} value: {value!r}, treating as UNKNOWN")
        return enum_cls.UNKNOWN


class QualitativeJudgments(BaseModel):
    """定性判断三元组"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    doc_quality: DocQuality = DocQuality.UNKNOWN
    intent_alignment: IntentAlignment = IntentAlignment.UNKNOWN
    audit_readiness: AuditReadiness = AuditReadiness.UNKNOWN

    @classmethod
    def from_values(
        cls,
        doc_quality: Any = None,
        intent_alignment: Any = None,
        audit_readiness: Any = None,
    ) -> "QualitativeJudgments":
        """从存储值构造（None 或未知字符串 → UNKNOWN）"""
        return cls(
            doc_quality=coerce_judgment(DocQuality, doc_quality),
            intent_alignment=coerce_judgment(IntentAlignment, intent_alignment),
            audit_readiness=coerce_judgment(AuditReadiness, audit_readiness),
        )

    @property
    def is_assessed(self) -> bool:
        """是否已有文档质量评估（用作风险评估标记）"""
        return self.doc_quality != DocQuality.UNKNOWN
