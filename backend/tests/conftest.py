"""
DecisionLedger 测试配置

统一管理测试数据库初始化，确保所有模型都被导入和注册。
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from decisionledger.database.config import Base
from decisionledger.database import models  # noqa: F401 - 注册主模型
from decisionledger.database import audit_log_models  # noqa: F401 - 注册审计日志模型
from decisionledger.database.models import (
    DecisionEvidenceRecord,
    Organization,
    OrganizationFramework,
    OrganizationSettings,
    Review,
)
from decisionledger.governance.compliance import clear_framework_cache
from decisionledger.governance.policy_loader import ENV_POLICY_PATH, clear_policy_cache

BASE_TIME = datetime(2025, 3, 1, 9, 0, 0)


@pytest.fixture
def db_engine():
    """内存数据库引擎（所有会话共享同一连接）"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """提供数据库会话"""
    Session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def reset_caches(monkeypatch):
    """每个测试使用内置策略与框架目录"""
    monkeypatch.delenv(ENV_POLICY_PATH, raising=False)
    clear_policy_cache()
    clear_framework_cache()
    yield
    clear_policy_cache()
    clear_framework_cache()


@pytest.fixture
def make_org(db_session):
    """创建组织（可选策略设置与启用框架）"""

    def _make(slug="acme", *, settings=None, frameworks=()):
        org = Organization(slug=slug, name=slug.title())
        db_session.add(org)
        db_session.flush()
        if settings is not None:
            db_session.add(OrganizationSettings(organization_id=org.id, **settings))
        for code in frameworks:
            db_session.add(OrganizationFramework(organization_id=org.id, framework_code=code))
        db_session.commit()
        return org

    return _make


@pytest.fixture
def make_record(db_session):
    """创建决策证据记录

    reviews 为 (author, ReviewState) 列表，按顺序递增 submitted_at。
    """

    def _make(*, reviews=(), organization=None, **fields):
        data = dict(
            pr_number=42,
            pr_title="Add retry backoff to payment worker",
            pr_url="https://github.com/acme/payments/pull/42",
            pr_author="alice",
            pr_base_branch="main",
            pr_head_branch="feature/retry-backoff",
        )
        data.update(fields)
        record = DecisionEvidenceRecord(**data)
        if organization is not None:
            record.organization_id = organization.id
        db_session.add(record)
        db_session.flush()
        for index, (author, state) in enumerate(reviews):
            db_session.add(Review(
                der_id=record.id,
                author=author,
                state=state,
                submitted_at=BASE_TIME + timedelta(minutes=index),
            ))
        db_session.commit()
        return record

    return _make

