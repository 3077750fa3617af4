"""DecisionLedger

PR 决策证据记录（DER）的评分、缺口检测、合规评估与证据封存。
"""

__version__ = "0.3.0"
