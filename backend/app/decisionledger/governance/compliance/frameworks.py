"""DecisionLedger - Framework Catalog

合规框架目录：框架由若干 control 组成，每个 control 用布尔/数值标志声明要求。
框架定义是数据（frameworks.yaml），评估引擎与具体框架无关。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from decisionledger.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_FRAMEWORKS_PATH = Path(__file__).parent / "frameworks.yaml"


class ControlDefinition(BaseModel):
    """单个 control 定义"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    control_id: str
    name: str
    category: str
    description: str = ""
    requires_approval: bool = False
    requires_review: bool = False
    requires_ticket_link: bool = False
    requires_description: bool = False
    requires_risk_assessment: bool = False
    min_reviewers: int = Field(default=0, ge=0)
    # 作者自批即违反职责分离
    segregation_of_duties: bool = False
    # 变更文件路径命中任一片段时要求增强评审
    sensitive_paths: list[str] = Field(default_factory=list)
    sensitive_min_reviewers: int = Field(default=2, ge=1)
    recommendation: Optional[str] = None


class FrameworkDefinition(BaseModel):
    """框架定义"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    short_code: str
    icon: str = ""
    description: str = ""
    controls: list[ControlDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_control_ids(self) -> "FrameworkDefinition":
        ids = [c.control_id for c in self.controls]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate control ids in {self.short_code}: {duplicates}")
        return self


class FrameworkCatalog(BaseModel):
    """框架目录"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    version: str = "1.0"
    frameworks: list[FrameworkDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_codes(self) -> "FrameworkCatalog":
        codes = [f.short_code for f in self.frameworks]
        if len(codes) != len(set(codes)):
            raise ValueError(f"Duplicate framework short codes: {codes}")
        return self

    def get(self, short_code: str) -> FrameworkDefinition | None:
        for framework in self.frameworks:
            if framework.short_code == short_code:
                return framework
        return None

    @property
    def codes(self) -> list[str]:
        return [f.short_code for f in self.frameworks]


def _read_catalog(path: Path) -> FrameworkCatalog:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return FrameworkCatalog.model_validate(data or {})


def load_frameworks(path: Optional[Path] = None) -> FrameworkCatalog:
    """加载框架目录

    优先级:
    1. 显式传入的 path
    2. 配置 DL_FRAMEWORKS_PATH
    3. 内置 frameworks.yaml

    自定义目录缺失或无效时记录警告并回退到内置目录。
    """
    if path is None and settings.FRAMEWORKS_PATH:
        path = Path(settings.FRAMEWORKS_PATH)

    if path is not None and path != DEFAULT_FRAMEWORKS_PATH:
        if path.exists():
            try:
                catalog = _read_catalog(path)
                logger.info(f"Framework catalog loaded from {path}")
                return catalog
            except Exception as e:
                logger.warning(f"Failed to load frameworks from {path}: {e}, using built-in catalog")
        else:
            logger.warning(f"Framework catalog not found at {path}, using built-in catalog")

    return _read_catalog(DEFAULT_FRAMEWORKS_PATH)


# 全局缓存（单例模式）
_cached_catalog: Optional[FrameworkCatalog] = None


def get_framework_catalog(force_reload: bool = False) -> FrameworkCatalog:
    """获取框架目录（带缓存）"""
    global _cached_catalog
    if _cached_catalog is None or force_reload:
        _cached_catalog = load_frameworks()
    return _cached_catalog


def clear_framework_cache() -> None:
    """清除框架目录缓存（用于测试）"""
    global _cached_catalog
    _cached_catalog = None
