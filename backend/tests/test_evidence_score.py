"""Tests for Evidence Score

验证证据评分的分项规则、上限与标签。
"""

import pytest

from decisionledger.governance.evidence_score import (
    ScoreInput,
    calculate_evidence_score,
    calculate_score_breakdown,
    get_score_label,
)


class TestDescriptionPoints:
    """描述得分"""

    def test_no_description(self):
        """无描述不得分"""
        assert calculate_score_breakdown(ScoreInput()).description == 0

    def test_length_threshold_is_exclusive(self):
        """长度正好 10 不得分，11 得 15 分"""
        at_threshold = ScoreInput(has_description=True, description_length=10)
        above = ScoreInput(has_description=True, description_length=11)
        assert calculate_score_breakdown(at_threshold).description == 0
        assert calculate_score_breakdown(above).description == 15

    def test_detailed_description_bonus(self):
        """长度 > 100 再加 10 分"""
        assert calculate_score_breakdown(
            ScoreInput(has_description=True, description_length=100)
        ).description == 15
        assert calculate_score_breakdown(
            ScoreInput(has_description=True, description_length=101)
        ).description == 25


class TestReviewPoints:
    """评审得分"""

    def test_review_without_approval(self):
        breakdown = calculate_score_breakdown(ScoreInput(review_count=2))
        assert breakdown.reviews == 15

    def test_review_with_approval(self):
        breakdown = calculate_score_breakdown(ScoreInput(review_count=1, approved_review_count=1))
        assert breakdown.reviews == 35


class TestTotal:
    """总分"""

    def test_documented_and_approved_change(self):
        """描述 120 字符 + 1 工单 + 1 评审 + 1 批准 → 85"""
        score_input = ScoreInput(
            has_description=True,
            description_length=120,
            ticket_count=1,
            review_count=1,
            approved_review_count=1,
            has_chat_context=False,
        )
        breakdown = calculate_score_breakdown(score_input)

        assert breakdown.description == 25
        assert breakdown.tickets == 25
        assert breakdown.reviews == 35
        assert breakdown.chat_context == 0
        assert breakdown.total == 85
        assert calculate_evidence_score(score_input) == 85

    def test_everything_present(self):
        """全部信号 → 95（不超过 100）"""
        score_input = ScoreInput(
            has_description=True,
            description_length=500,
            ticket_count=3,
            review_count=4,
            approved_review_count=2,
            has_chat_context=True,
        )
        assert calculate_evidence_score(score_input) == 95

    def test_empty_input(self):
        assert calculate_evidence_score(ScoreInput()) == 0

    @pytest.mark.parametrize("ticket_count", [0, 1, 7])
    @pytest.mark.parametrize("review_count,approved", [(0, 0), (1, 0), (3, 3)])
    def test_score_stays_within_bounds(self, ticket_count, review_count, approved):
        score = calculate_evidence_score(ScoreInput(
            has_description=True,
            description_length=10_000,
            ticket_count=ticket_count,
            review_count=review_count,
            approved_review_count=approved,
            has_chat_context=True,
        ))
        assert 0 <= score <= 100

    def test_deterministic(self):
        """相同输入多次计算结果一致"""
        score_input = ScoreInput(has_description=True, description_length=42, review_count=1)
        assert calculate_score_breakdown(score_input) == calculate_score_breakdown(score_input)


class TestScoreLabel:
    """分数标签"""

    @pytest.mark.parametrize("score,label", [
        (100, "Good"),
        (75, "Good"),
        (74, "Fair"),
        (50, "Fair"),
        (49, "Poor"),
        (25, "Poor"),
        (24, "Incomplete"),
        (0, "Incomplete"),
    ])
    def test_labels(self, score, label):
        assert get_score_label(score) == label
