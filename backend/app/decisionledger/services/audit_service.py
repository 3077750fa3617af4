"""Audit Service

审计日志写入与查询服务。审计写入失败不阻塞主流程。
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from decisionledger.core.config import settings
from decisionledger.database.audit_log_models import AuditEventType, AuditLog
from decisionledger.governance.canonical import canonical_hash
from decisionledger.governance.policy_loader import get_policy

logger = logging.getLogger(__name__)


def is_audit_enabled() -> bool:
    """检查审计日志是否启用"""
    return settings.AUDIT_LOG_ENABLED


def _hash_policy() -> str | None:
    """计算策略哈希"""
    try:
        return canonical_hash(get_policy().model_dump(mode="json"))[:16]
    except Exception:
        logger.debug("Policy hash unavailable", exc_info=True)
        return None


def write_audit_event(
    db: Session,
    *,
    event_type: AuditEventType,
    record_id: UUID | None = None,
    actor: str | None = None,
    status: str | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLog | None:
    """
    写入审计事件。

    Args:
        db: 数据库会话
        event_type: 事件类型
        record_id: 决策证据记录 ID（可选）
        actor: 执行者（可选）
        status: 状态（可选）
        details: 扩展信息（可选）

    Returns:
        创建的 AuditLog 记录，或 None（审计已禁用或写入失败）
    """
    if not is_audit_enabled():
        logger.debug("Audit logging disabled, skipping event")
        return None

    try:
        log_entry = AuditLog(
            record_id=record_id,
            ts=datetime.now(timezone.utc),
            event_type=event_type,
            actor=actor,
            status=status,
            policy_hash=_hash_policy(),
            details=json.dumps(details, default=str) if details else None,
        )

        db.add(log_entry)
        db.commit()
        db.refresh(log_entry)

        logger.info(f"Audit event logged: {event_type.value} record={record_id}")
        return log_entry

    except Exception as e:
        logger.exception(f"Failed to write audit event: {e}")
        db.rollback()
        return None


def query_audit_events(
    db: Session,
    record_id: UUID,
    *,
    event_types: list[AuditEventType] | None = None,
    limit: int = 1000,
) -> list[AuditLog]:
    """
    查询指定记录的审计事件。

    Returns:
        按时间排序的审计事件列表
    """
    query = db.query(AuditLog).filter(AuditLog.record_id == record_id)

    if event_types:
        query = query.filter(AuditLog.event_type.in_(event_types))

    return query.order_by(AuditLog.ts.asc()).limit(limit).all()


def audit_event_to_dict(event: AuditLog) -> dict[str, Any]:
    """将审计事件转换为字典"""
    return {
        "id": str(event.id),
        "record_id": str(event.record_id) if event.record_id else None,
        "ts": event.ts.isoformat(),
        "event_type": event.event_type.value,
        "actor": event.actor,
        "status": event.status,
        "policy_hash": event.policy_hash,
        "details": json.loads(event.details) if event.details else None,
    }
