"""全局配置。"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from storyloom.models.keyed_entry import ThreadType, Urgency
from storyloom.models.promise import PromiseScope

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "STORYLOOM_CONFIG"

_SCOPE_ORDER = (PromiseScope.SCENE, PromiseScope.ACT, PromiseScope.STORY)


class EngineConfig(BaseModel):
    """累积引擎配置。"""

    # ── 承诺生命周期 ──
    promise_scope_expiry: dict[PromiseScope, int] = Field(
        default_factory=lambda: {
            PromiseScope.SCENE: 4,
            PromiseScope.ACT: 12,
            PromiseScope.STORY: 40,
        },
        description="各作用域的过期阈值（页数）；age 超过阈值即静默丢弃",
    )

    # ── 线索默认值 ──
    default_thread_type: ThreadType = Field(
        default=ThreadType.INFORMATION, description="裸字符串线索的默认类型"
    )
    default_urgency: Urgency = Field(
        default=Urgency.MEDIUM, description="裸字符串线索的默认紧迫度"
    )

    # ── 设定账本 ──
    warn_on_canon_contradiction: bool = Field(
        default=True, description="新增设定疑似与已有设定矛盾时是否记录警告"
    )

    @field_validator("promise_scope_expiry")
    @classmethod
    def _thresholds_strictly_increasing(
        cls, value: dict[PromiseScope, int]
    ) -> dict[PromiseScope, int]:
        missing = [scope.value for scope in _SCOPE_ORDER if scope not in value]
        if missing:
            raise ValueError(f"promise_scope_expiry missing scopes: {missing}")
        thresholds = [value[scope] for scope in _SCOPE_ORDER]
        if any(t < 0 for t in thresholds):
            raise ValueError("promise expiry thresholds must be non-negative")
        if not all(a < b for a, b in zip(thresholds, thresholds[1:])):
            raise ValueError(
                "promise expiry thresholds must be strictly increasing: SCENE < ACT < STORY"
            )
        return value

    def expiry_threshold(self, scope: PromiseScope) -> int:
        return self.promise_scope_expiry[scope]


def load_config(path: str | Path | None = None) -> EngineConfig:
    """加载配置：显式路径 → 环境变量 STORYLOOM_CONFIG → 默认值。"""
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is None:
        return EngineConfig()

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    logger.debug("已加载配置: %s", path)
    return EngineConfig.model_validate(data)
