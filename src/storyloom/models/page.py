"""页面（故事树节点）快照模型。"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from storyloom.models.base import ReadOnlyMap
from storyloom.models.keyed_entry import ActiveState, KeyedEntry
from storyloom.models.npc import NpcAgenda, NpcRelationship
from storyloom.models.promise import ResolvedPromiseMeta, ResolvedThreadMeta, TrackedPromise
from storyloom.models.structure import AccumulatedStructureState

DiagnosticCategory = Literal[
    "inventory", "health", "threats", "constraints", "threads", "character_state"
]


class AccumulationDiagnostic(BaseModel):
    """非致命问题（如移除了不存在的 ID），随结果一起返回。"""

    model_config = ConfigDict(frozen=True)

    category: DiagnosticCategory = Field(description="出问题的条目类别")
    code: Literal["unknown_removal_id"] = Field(default="unknown_removal_id")
    ref_id: str = Field(description="引用的 ID")
    subject: str | None = Field(default=None, description="角色名（仅角色状态）")


class PageSnapshot(BaseModel):
    """一个节点的完整累积状态。生成后不可变，子页只读取它。

    映射字段是只读视图，默认值同样经过校验。
    """

    model_config = ConfigDict(frozen=True, validate_default=True)

    id: int = Field(ge=1, description="页面 ID")
    parent_id: int | None = Field(default=None, description="父页 ID，根页为 None")
    structure_version_id: str | None = Field(default=None, description="生成时所用的结构版本")

    accumulated_active_state: ActiveState = Field(default_factory=ActiveState)
    accumulated_inventory: tuple[KeyedEntry, ...] = Field(default=())
    accumulated_health: tuple[KeyedEntry, ...] = Field(default=())
    accumulated_character_state: ReadOnlyMap[str, tuple[KeyedEntry, ...]] = Field(
        default_factory=dict
    )

    thread_ages: ReadOnlyMap[str, int] = Field(
        default_factory=dict, description="线索 ID → 未回收页数"
    )
    accumulated_promises: tuple[TrackedPromise, ...] = Field(default=())
    accumulated_npc_agendas: ReadOnlyMap[str, NpcAgenda] = Field(default_factory=dict)
    accumulated_npc_relationships: ReadOnlyMap[str, NpcRelationship] = Field(
        default_factory=dict
    )
    accumulated_structure_state: AccumulatedStructureState = Field(
        default_factory=AccumulatedStructureState
    )

    resolved_thread_meta: ReadOnlyMap[str, ResolvedThreadMeta] = Field(
        default_factory=dict, description="本页回收的线索"
    )
    resolved_promise_meta: ReadOnlyMap[str, ResolvedPromiseMeta] = Field(
        default_factory=dict, description="本页兑现的承诺"
    )

    id_counters: ReadOnlyMap[str, int] = Field(
        default_factory=dict,
        description="各前缀已分配的最大序号；角色状态用 'cs:<角色名>'",
    )

    @property
    def open_thread_ids(self) -> tuple[str, ...]:
        return tuple(t.id for t in self.accumulated_active_state.open_threads)
