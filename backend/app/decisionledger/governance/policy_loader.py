"""DecisionLedger - Policy Loader

加载默认缺口策略 (policy_config.yaml)，并把组织级设置解析为 GapPolicy。

Features:
- Pydantic schema 验证
- YAML 加载
- 默认值回退（文件缺失/无效、组织设置缺失/字段无效）
- 环境变量路径覆盖
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from decisionledger.governance.gap_detector import GapPolicy

logger = logging.getLogger(__name__)

# 默认策略文件路径（相对于此模块）
DEFAULT_POLICY_PATH = Path(__file__).parent / "policy_config.yaml"

# 环境变量覆盖
ENV_POLICY_PATH = "DL_POLICY_PATH"


class PolicyConfig(BaseModel):
    """策略配置主模型"""
    version: str = Field(default="1.0", description="配置版本")
    gap_defaults: GapPolicy = Field(
        default_factory=GapPolicy,
        description="组织未配置时使用的缺口策略"
    )
    default_frameworks: list[str] = Field(
        default_factory=list,
        description="组织未启用任何框架时的默认框架（空表示不评估）"
    )


def load_policy(path: Optional[Path] = None) -> PolicyConfig:
    """加载策略配置

    优先级:
    1. 显式传入的 path
    2. 环境变量 DL_POLICY_PATH
    3. 默认路径 (governance/policy_config.yaml)
    4. 内置默认值
    """
    if path is None:
        env_path = os.environ.get(ENV_POLICY_PATH)
        path = Path(env_path) if env_path else DEFAULT_POLICY_PATH

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
            config = PolicyConfig.model_validate(data or {})
            logger.info(f"Policy loaded from {path}")
            return config
        except Exception as e:
            logger.warning(f"Failed to load policy from {path}: {e}, using defaults")
            return PolicyConfig()
    else:
        logger.info(f"Policy file not found at {path}, using defaults")
        return PolicyConfig()


# 全局缓存（单例模式）
_cached_policy: Optional[PolicyConfig] = None


def get_policy(force_reload: bool = False) -> PolicyConfig:
    """获取策略配置（带缓存）"""
    global _cached_policy
    if _cached_policy is None or force_reload:
        _cached_policy = load_policy()
    return _cached_policy


def clear_policy_cache() -> None:
    """清除策略缓存（用于测试）"""
    global _cached_policy
    _cached_policy = None


def _coerce_bool(value: Any, default: bool, field_name: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    logger.warning(f"Invalid {field_name}={value!r} in organization settings, using {default}")
    return default


def _coerce_min_reviewers(value: Any, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        logger.warning(f"Invalid min_reviewers={value!r} in organization settings, using {default}")
        return default
    return value


def resolve_gap_policy(org_settings: Any = None, policy: PolicyConfig | None = None) -> GapPolicy:
    """把组织设置解析为缺口策略

    组织设置缺失或字段无效时逐字段回退到默认值，不会让重算失败。

    Args:
        org_settings: 组织设置对象（具有 require_description / require_ticket_link /
            min_reviewers 属性），可为 None
        policy: 策略配置（可选，默认从文件加载）
    """
    if policy is None:
        policy = get_policy()
    defaults = policy.gap_defaults

    if org_settings is None:
        return defaults

    return GapPolicy(
        require_description=_coerce_bool(
            getattr(org_settings, "require_description", None),
            defaults.require_description,
            "require_description",
        ),
        require_ticket_link=_coerce_bool(
            getattr(org_settings, "require_ticket_link", None),
            defaults.require_ticket_link,
            "require_ticket_link",
        ),
        min_reviewers=_coerce_min_reviewers(
            getattr(org_settings, "min_reviewers", None),
            defaults.min_reviewers,
        ),
    )
