"""DecisionLedger - Database Configuration

数据库连接配置
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from decisionledger.core.config import settings

# 创建 Base 类
Base = declarative_base()

# 数据库 URL（DL_DB_URL 环境变量）
DATABASE_URL = settings.DB_URL


def make_engine(url: str) -> Engine:
    """创建引擎（SQLite 允许跨线程使用连接）"""
    return create_engine(
        url,
        echo=False,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )


def make_session_factory(url: str) -> sessionmaker:
    """为指定 URL 创建 Session 工厂"""
    return sessionmaker(autocommit=False, autoflush=False, bind=make_engine(url))


# 创建引擎
engine = make_engine(DATABASE_URL)

# 创建 Session 工厂
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(session_factory: sessionmaker | None = None):
    """获取数据库会话（生成器，结束时关闭）"""
    db = (session_factory or SessionLocal)()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """创建所有表"""
    from decisionledger.database import audit_log_models, models  # noqa: F401 - 注册模型

    Base.metadata.create_all(bind=bind or engine)
