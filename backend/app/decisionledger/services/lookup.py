"""DecisionLedger - Record Lookup

服务层共用的记录查询。
"""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from decisionledger.database.models import DecisionEvidenceRecord, EvidenceVault


def coerce_uuid(value: UUID | str) -> Optional[UUID]:
    """把字符串 ID 转为 UUID，格式无效时返回 None"""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def get_record(db: Session, der_id: UUID | str) -> Optional[DecisionEvidenceRecord]:
    """按 ID 获取决策证据记录"""
    record_id = coerce_uuid(der_id)
    if record_id is None:
        return None
    return db.query(DecisionEvidenceRecord).filter(DecisionEvidenceRecord.id == record_id).first()


def get_vault_for_record(db: Session, der_id: UUID) -> Optional[EvidenceVault]:
    """获取记录对应的金库"""
    return db.query(EvidenceVault).filter(EvidenceVault.decision_record_id == der_id).first()
