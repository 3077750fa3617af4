"""DecisionLedger - Exceptions

核心层异常。良性结果（记录不存在的重算、完整性校验失败）不抛异常，
使用类型化返回值表达。
"""

from __future__ import annotations


class DecisionLedgerError(Exception):
    """DecisionLedger 基础异常"""


class RecordNotFoundError(DecisionLedgerError, LookupError):
    """决策证据记录不存在"""

    def __init__(self, record_id: object):
        self.record_id = record_id
        super().__init__(f"Decision evidence record not found: {record_id}")


class InvalidRecordStateError(DecisionLedgerError):
    """记录状态不允许当前操作（例如对未合并的 PR 封存证据）"""

    def __init__(self, record_id: object, state: str, expected: str):
        self.record_id = record_id
        self.state = state
        self.expected = expected
        super().__init__(
            f"Record {record_id} is in state {state}, expected {expected}"
        )


class GapNotFoundError(DecisionLedgerError, LookupError):
    """缺口记录不存在"""

    def __init__(self, gap_id: object):
        self.gap_id = gap_id
        super().__init__(f"Evidence gap not found: {gap_id}")


class OrganizationNotFoundError(DecisionLedgerError, LookupError):
    """无法解析组织"""
