"""Core package"""
from decisionledger.core.exceptions import (
    DecisionLedgerError,
    GapNotFoundError,
    InvalidRecordStateError,
    OrganizationNotFoundError,
    RecordNotFoundError,
)
from decisionledger.core.locks import RecordLockRegistry, get_record_locks

__all__ = [
    "DecisionLedgerError",
    "GapNotFoundError",
    "InvalidRecordStateError",
    "OrganizationNotFoundError",
    "RecordNotFoundError",
    "RecordLockRegistry",
    "get_record_locks",
]
