"""外部协作者的输出：叙事增量（生成器）与分析结果（分析器）。

两者都在边界处校验并转换为强类型结构，核心累积逻辑不再解析原始 JSON。
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from storyloom.models.base import BoundaryModel
from storyloom.models.keyed_entry import (
    ConstraintType,
    ThreadType,
    ThreatType,
    Urgency,
    split_tagged_text,
)
from storyloom.models.npc import NpcAgenda, NpcRelationship
from storyloom.models.promise import (
    DetectedPromise,
    PromisePayoffAssessment,
    ThreadPayoffAssessment,
)


# ──────────────────────────────────────────
# 新增条目
# ──────────────────────────────────────────


class TaggedAddition(BoundaryModel):
    """带可选旧格式标签的新增条目。

    裸字符串在这里一次性拆成 text + alias，核心层不再解析 "TAG_x:" 前缀。
    """

    text: str = Field(description="条目描述")
    alias: str = Field(default="", description="旧格式标签，如 'THREAT_wolves'")

    @model_validator(mode="before")
    @classmethod
    def _from_tagged_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            tagged = split_tagged_text(data)
            return {"text": tagged.description, "alias": tagged.alias}
        return data


class ThreatAddition(TaggedAddition):
    threat_type: ThreatType = Field(default=ThreatType.HOSTILE_AGENT, description="威胁类型")


class ConstraintAddition(TaggedAddition):
    constraint_type: ConstraintType = Field(
        default=ConstraintType.PHYSICAL, description="约束类型"
    )


class ThreadAddition(TaggedAddition):
    """新开线索。裸字符串按 INFORMATION / MEDIUM 处理。"""

    thread_type: ThreadType = Field(default=ThreadType.INFORMATION, description="线索类型")
    urgency: Urgency = Field(default=Urgency.MEDIUM, description="紧迫程度")


class CharacterStateAddition(BoundaryModel):
    character_name: str = Field(description="角色名（本层不做大小写归一）")
    states: list[str] = Field(default_factory=list, description="新增状态文本")


class CharacterStateRemoval(BoundaryModel):
    character_name: str = Field(description="角色名")
    ids: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("ids", "states"),
        description="要移除的 cs-<n> ID",
    )


# ──────────────────────────────────────────
# 生成器增量
# ──────────────────────────────────────────


class NarrativeDelta(BoundaryModel):
    """一次叙事步骤提出的全部增删。所有列表缺省为空。"""

    current_location: str | None = Field(
        default=None,
        validation_alias=AliasChoices("currentLocation", "current_location", "newLocation"),
        description="新位置；None 表示沿用父页",
    )

    threats_added: list[ThreatAddition] = Field(default_factory=list)
    threats_removed: list[str] = Field(default_factory=list)
    constraints_added: list[ConstraintAddition] = Field(default_factory=list)
    constraints_removed: list[str] = Field(default_factory=list)
    threads_added: list[ThreadAddition] = Field(default_factory=list)
    threads_resolved: list[str] = Field(default_factory=list)

    inventory_added: list[str] = Field(default_factory=list)
    inventory_removed: list[str] = Field(default_factory=list)
    health_added: list[str] = Field(default_factory=list)
    health_removed: list[str] = Field(default_factory=list)

    character_state_changes_added: list[CharacterStateAddition] = Field(default_factory=list)
    character_state_changes_removed: list[CharacterStateRemoval] = Field(default_factory=list)

    new_canon_facts: list[str] = Field(default_factory=list, description="新的世界设定")
    new_character_canon_facts: dict[str, list[str]] = Field(
        default_factory=dict, description="角色名 → 新的角色设定"
    )

    npc_agenda_updates: list[NpcAgenda] = Field(default_factory=list)
    npc_relationship_updates: list[NpcRelationship] = Field(default_factory=list)

    @field_validator("new_character_canon_facts", mode="before")
    @classmethod
    def _character_facts_from_list(cls, value: Any) -> Any:
        """同时接受 [{characterName, facts}] 列表形式，同名条目合并。"""
        if not isinstance(value, list):
            return value
        merged: dict[str, list[str]] = {}
        for item in value:
            if not isinstance(item, dict):
                raise ValueError("character canon fact entries must be objects")
            name = item.get("characterName", item.get("character_name"))
            facts = item.get("facts", [])
            if not isinstance(name, str) or not isinstance(facts, list):
                raise ValueError("character canon fact entry needs characterName and facts")
            merged.setdefault(name, []).extend(facts)
        return merged


# ──────────────────────────────────────────
# 分析器结论
# ──────────────────────────────────────────


class AnalystResult(BoundaryModel):
    """分析器对本页的结构性判断。"""

    beat_concluded: bool = Field(default=False, description="当前节拍是否已完成")
    beat_resolution: str = Field(default="", description="节拍结语")
    deviation_detected: bool = Field(default=False, description="是否偏离计划结构")
    deviation_reason: str = Field(default="", description="偏离原因")
    invalidated_beat_ids: list[str] = Field(default_factory=list, description="判定失效的节拍")

    promises_detected: list[DetectedPromise] = Field(default_factory=list)
    promises_resolved: list[str] = Field(default_factory=list)
    thread_payoff_assessments: list[ThreadPayoffAssessment] = Field(default_factory=list)
    promise_payoff_assessments: list[PromisePayoffAssessment] = Field(default_factory=list)
