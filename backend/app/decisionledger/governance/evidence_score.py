"""DecisionLedger - Evidence Score (证据评分)

根据证据信号计算 0-100 的确定性分数。

规则（加性，上限 100）：
- 描述：长度 > 10 → +15；长度 > 100 → 再 +10
- 工单：至少一个 → +25
- 评审：有评审 → +15；有批准 → +20
- 聊天上下文：至少一个线程 → +10
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

MAX_SCORE = 100

DESCRIPTION_PRESENT_POINTS = 15
DESCRIPTION_DETAILED_POINTS = 10
TICKET_POINTS = 25
REVIEW_POINTS = 15
APPROVAL_POINTS = 20
CHAT_CONTEXT_POINTS = 10

DESCRIPTION_PRESENT_MIN_LENGTH = 10
DESCRIPTION_DETAILED_MIN_LENGTH = 100


class ScoreInput(BaseModel):
    """评分输入信号"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    has_description: bool = False
    description_length: int = Field(default=0, ge=0)
    ticket_count: int = Field(default=0, ge=0)
    review_count: int = Field(default=0, ge=0)
    approved_review_count: int = Field(default=0, ge=0)
    has_chat_context: bool = False


class ScoreBreakdown(BaseModel):
    """分项得分"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    description: int = 0
    tickets: int = 0
    reviews: int = 0
    chat_context: int = 0
    total: int = 0


def calculate_score_breakdown(score_input: ScoreInput) -> ScoreBreakdown:
    """计算分项得分"""
    description = 0
    if score_input.has_description and score_input.description_length > DESCRIPTION_PRESENT_MIN_LENGTH:
        description += DESCRIPTION_PRESENT_POINTS
        if score_input.description_length > DESCRIPTION_DETAILED_MIN_LENGTH:
            description += DESCRIPTION_DETAILED_POINTS

    tickets = TICKET_POINTS if score_input.ticket_count > 0 else 0

    reviews = 0
    if score_input.review_count > 0:
        reviews += REVIEW_POINTS
    if score_input.approved_review_count > 0:
        reviews += APPROVAL_POINTS

    chat_context = CHAT_CONTEXT_POINTS if score_input.has_chat_context else 0

    total = min(description + tickets + reviews + chat_context, MAX_SCORE)

    logger.debug(
        f"Evidence score: description={description} tickets={tickets} "
        f"reviews={reviews} chat={chat_context} total={total}"
    )

    return ScoreBreakdown(
        description=description,
        tickets=tickets,
        reviews=reviews,
        chat_context=chat_context,
        total=total,
    )


def calculate_evidence_score(score_input: ScoreInput) -> int:
    """计算总分"""
    return calculate_score_breakdown(score_input).total


def get_score_label(score: int) -> str:
    """分数等级标签"""
    if score >= 75:
        return "Good"
    if score >= 50:
        return "Fair"
    if score >= 25:
        return "Poor"
    return "Incomplete"
