"""Audit Log Models

审计日志 ORM 模型，记录重算、缺口处理与金库封存/校验事件。
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, String, Text
from sqlalchemy.dialects.postgresql import UUID

from decisionledger.database.config import Base


class AuditEventType(str, enum.Enum):
    """审计事件类型"""
    RECORD_RECALCULATED = "record_recalculated"
    RECORD_CONFIRMED = "record_confirmed"
    RECORD_CLOSED = "record_closed"
    GAP_RESOLVED = "gap_resolved"
    VAULT_SEALED = "vault_sealed"
    VAULT_VERIFIED = "vault_verified"
    VAULT_INTEGRITY_FAILED = "vault_integrity_failed"


class AuditLog(Base):
    """审计日志表"""

    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    record_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    ts = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    # 事件信息
    event_type = Column(Enum(AuditEventType), nullable=False, index=True)
    actor = Column(String(255), nullable=True)
    status = Column(String(50), nullable=True)

    # 策略可追溯
    policy_hash = Column(String(64), nullable=True)

    # 扩展信息
    details = Column(Text, nullable=True)  # JSON 字符串

    def __repr__(self) -> str:
        return f"<AuditLog {self.id} {self.event_type.value} record={self.record_id}>"
