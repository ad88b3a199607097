"""故事结构、结构版本与节拍推进状态模型。"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from storyloom.models.base import BoundaryModel

BeatStatus = Literal["pending", "active", "concluded"]


class StoryBeat(BaseModel):
    """最小的戏剧单元。ID 为层级式 "幕.拍"，如 "2.3"。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="层级 ID，如 '1.2'")
    description: str = Field(description="节拍内容")
    objective: str = Field(default="", description="节拍目标")


class StoryAct(BaseModel):
    """一幕。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="幕 ID，从 '1' 开始")
    name: str = Field(default="", description="幕名")
    objective: str = Field(default="", description="本幕目标")
    stakes: str = Field(default="", description="本幕赌注")
    entry_condition: str = Field(default="", description="进入条件")
    beats: tuple[StoryBeat, ...] = Field(default=(), description="节拍列表")


class StoryStructure(BaseModel):
    """完整的幕/拍结构。创建后不可变，修改只能产出新版本。"""

    model_config = ConfigDict(frozen=True)

    overall_theme: str = Field(default="", description="全书主题")
    acts: tuple[StoryAct, ...] = Field(default=(), description="幕列表")


class BeatProgression(BaseModel):
    """单个节拍的推进状态。"""

    model_config = ConfigDict(frozen=True)

    beat_id: str = Field(description="节拍 ID")
    status: BeatStatus = Field(default="pending", description="pending / active / concluded")
    resolution: str | None = Field(default=None, description="节拍结语（concluded 时填写）")


class AccumulatedStructureState(BaseModel):
    """分支上的结构推进指针。除终局外恰有一个 active 节拍。"""

    model_config = ConfigDict(frozen=True)

    current_act_index: int = Field(default=0, ge=0, description="当前幕下标（0 起）")
    current_beat_index: int = Field(default=0, ge=0, description="当前拍下标（0 起）")
    beat_progressions: tuple[BeatProgression, ...] = Field(
        default=(), description="各节拍状态"
    )


class StructureVersion(BaseModel):
    """结构版本。重写会产生新版本，旧版本保留用于审计。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="版本 ID")
    structure: StoryStructure = Field(description="该版本的结构")
    previous_version_id: str | None = Field(default=None, description="上一版本 ID")
    created_at_page_id: int | None = Field(default=None, description="触发重写的页面 ID")
    rewrite_reason: str | None = Field(default=None, description="重写原因（偏离说明）")
    preserved_beat_ids: tuple[str, ...] = Field(default=(), description="原样保留的节拍")
    created_at: datetime | None = Field(default=None, description="登记时间，由故事树写入")


class StructureProgressionResult(BaseModel):
    """一次 advance 的结果。"""

    model_config = ConfigDict(frozen=True)

    updated_state: AccumulatedStructureState
    act_advanced: bool = False
    beat_advanced: bool = False
    is_complete: bool = False


class DeviationInfo(BaseModel):
    """偏离记录，供渲染层展示。"""

    model_config = ConfigDict(frozen=True)

    detected: bool = Field(default=True, description="是否检测到偏离")
    reason: str = Field(default="", description="偏离原因")
    beats_invalidated: int = Field(default=0, ge=0, description="被判失效的节拍数")


class CompletedBeat(BaseModel):
    """已完成节拍的快照（重写时原样保留）。"""

    model_config = ConfigDict(frozen=True)

    act_index: int
    beat_index: int
    beat_id: str
    description: str
    objective: str
    resolution: str = ""


class PlannedBeat(BaseModel):
    """当前位置之后尚未到达的原计划节拍，重写时作为参考上下文。"""

    model_config = ConfigDict(frozen=True)

    act_index: int
    beat_index: int
    beat_id: str
    description: str
    objective: str


# ── 外部结构生成器的输出 ──


class GeneratedBeat(BoundaryModel):
    description: str
    objective: str = ""


class GeneratedAct(BoundaryModel):
    name: str = ""
    objective: str = ""
    stakes: str = ""
    entry_condition: str = ""
    beats: list[GeneratedBeat] = Field(default_factory=list)


class StructureGenerationResult(BoundaryModel):
    """结构生成器（LLM）产出的原始结构，尚未分配节拍 ID。"""

    overall_theme: str = ""
    acts: list[GeneratedAct] = Field(default_factory=list)
    raw_response: str = ""
