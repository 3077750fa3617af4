"""DecisionLedger - Database Models

SQLAlchemy 数据模型定义
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from decisionledger.database.config import Base
from decisionledger.governance.gap_detector import GapSeverity, GapType
from decisionledger.governance.judgments import AuditReadiness, DocQuality, IntentAlignment


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# 枚举类型
# ============================================================

class PRState(str, PyEnum):
    """PR 状态"""
    OPEN = "OPEN"
    MERGED = "MERGED"
    CLOSED = "CLOSED"


class RecordStatus(str, PyEnum):
    """决策证据记录生命周期状态"""
    PENDING = "PENDING"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    CONFIRMED = "CONFIRMED"
    COMPLETE = "COMPLETE"
    INCOMPLETE = "INCOMPLETE"


class ReviewState(str, PyEnum):
    """评审状态"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    DISMISSED = "DISMISSED"


# ============================================================
# 组织与策略
# ============================================================

class Organization(Base):
    """组织模型"""
    __tablename__ = "organizations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # 关联
    settings = relationship("OrganizationSettings", back_populates="organization", uselist=False, cascade="all, delete-orphan")
    frameworks = relationship("OrganizationFramework", back_populates="organization", cascade="all, delete-orphan")
    records = relationship("DecisionEvidenceRecord", back_populates="organization")


class OrganizationSettings(Base):
    """组织级缺口策略（字段为空时回退默认值）"""
    __tablename__ = "organization_settings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, unique=True)
    require_description = Column(Boolean, nullable=True)
    require_ticket_link = Column(Boolean, nullable=True)
    min_reviewers = Column(Integer, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    organization = relationship("Organization", back_populates="settings")


class OrganizationFramework(Base):
    """组织启用的合规框架（按框架代码）"""
    __tablename__ = "organization_frameworks"
    __table_args__ = (
        UniqueConstraint("organization_id", "framework_code", name="uq_org_framework"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    framework_code = Column(String(50), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    organization = relationship("Organization", back_populates="frameworks")


# ============================================================
# 决策证据记录
# ============================================================

class DecisionEvidenceRecord(Base):
    """决策证据记录（每个 PR 一条）"""
    __tablename__ = "decision_evidence_records"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=True, index=True)

    # PR 元数据
    pr_number = Column(Integer, nullable=False)
    pr_title = Column(String(512), nullable=False)
    pr_url = Column(String(1024), nullable=False, default="")
    pr_author = Column(String(255), nullable=False)
    pr_base_branch = Column(String(255), nullable=False, default="main")
    pr_head_branch = Column(String(255), nullable=False, default="")
    pr_state = Column(Enum(PRState), nullable=False, default=PRState.OPEN)
    pr_merged_at = Column(DateTime(timezone=True), nullable=True)

    # 证据
    description = Column(Text, nullable=True)
    ticket_links = Column(JSON, nullable=False, default=list)
    chat_threads = Column(JSON, nullable=False, default=list)
    files_changed = Column(JSON, nullable=False, default=list)

    # 定性判断（分析器缺席时为 UNKNOWN）
    doc_quality = Column(Enum(DocQuality), nullable=False, default=DocQuality.UNKNOWN)
    intent_alignment = Column(Enum(IntentAlignment), nullable=False, default=IntentAlignment.UNKNOWN)
    audit_readiness = Column(Enum(AuditReadiness), nullable=False, default=AuditReadiness.UNKNOWN)

    evidence_score = Column(Integer, nullable=False, default=0)
    status = Column(Enum(RecordStatus), nullable=False, default=RecordStatus.PENDING)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    # 关联
    organization = relationship("Organization", back_populates="records")
    reviews = relationship("Review", back_populates="record", cascade="all, delete-orphan", order_by="Review.submitted_at")
    comments = relationship("Comment", back_populates="record", cascade="all, delete-orphan", order_by="Comment.created_at")
    gaps = relationship("EvidenceGap", back_populates="record", cascade="all, delete-orphan", order_by="EvidenceGap.position")
    vault = relationship("EvidenceVault", back_populates="record", uselist=False)


class Review(Base):
    """代码评审"""
    __tablename__ = "reviews"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    der_id = Column(UUID(as_uuid=True), ForeignKey("decision_evidence_records.id"), nullable=False, index=True)
    author = Column(String(255), nullable=False)
    state = Column(Enum(ReviewState), nullable=False, default=ReviewState.PENDING)
    body = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    record = relationship("DecisionEvidenceRecord", back_populates="reviews")


class Comment(Base):
    """PR 评论"""
    __tablename__ = "comments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    der_id = Column(UUID(as_uuid=True), ForeignKey("decision_evidence_records.id"), nullable=False, index=True)
    author = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    path = Column(String(1024), nullable=True)  # 行内评论所在文件
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    record = relationship("DecisionEvidenceRecord", back_populates="comments")


class EvidenceGap(Base):
    """证据缺口（每次重算整体替换）"""
    __tablename__ = "evidence_gaps"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    der_id = Column(UUID(as_uuid=True), ForeignKey("decision_evidence_records.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)  # 检测顺序
    type = Column(Enum(GapType), nullable=False)
    severity = Column(Enum(GapSeverity), nullable=False)
    message = Column(Text, nullable=False)
    suggestion = Column(Text, nullable=True)
    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    record = relationship("DecisionEvidenceRecord", back_populates="gaps")


class EvidenceVault(Base):
    """证据金库（合并时封存，不可变）"""
    __tablename__ = "evidence_vaults"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # 唯一约束保证一条记录最多一个金库
    decision_record_id = Column(UUID(as_uuid=True), ForeignKey("decision_evidence_records.id"), nullable=False, unique=True)
    organization_id = Column(UUID(as_uuid=True), nullable=True, index=True)

    # 规范化序列化后的快照文本与其 SHA-256
    snapshot_data = Column(Text, nullable=False)
    snapshot_hash = Column(String(64), nullable=False)

    merged_at = Column(DateTime(timezone=True), nullable=True)
    merged_by = Column(String(255), nullable=True)
    is_sealed = Column(Boolean, nullable=False, default=False)
    sealed_at = Column(DateTime(timezone=True), nullable=True)
    sealed_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    record = relationship("DecisionEvidenceRecord", back_populates="vault")

    def __repr__(self) -> str:
        return f"<EvidenceVault {self.id} record={self.decision_record_id} sealed={self.is_sealed}>"
