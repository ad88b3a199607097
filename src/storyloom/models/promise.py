"""叙事承诺与兑现评估模型。"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from storyloom.models.base import BoundaryModel
from storyloom.models.keyed_entry import ThreadType, Urgency


class PromiseType(str, Enum):
    """叙事承诺类型。"""

    CHEKHOV_GUN = "CHEKHOV_GUN"
    FORESHADOWING = "FORESHADOWING"
    DRAMATIC_IRONY = "DRAMATIC_IRONY"
    UNRESOLVED_EMOTION = "UNRESOLVED_EMOTION"
    SETUP_PAYOFF = "SETUP_PAYOFF"


class PromiseScope(str, Enum):
    """承诺的预期寿命：场景 < 幕 < 全书。"""

    SCENE = "SCENE"
    ACT = "ACT"
    STORY = "STORY"


SatisfactionLevel = Literal["RUSHED", "ADEQUATE", "WELL_EARNED"]


class DetectedPromise(BoundaryModel):
    """分析器在本页新发现的承诺（尚未分配 ID）。"""

    description: str = Field(description="承诺描述")
    promise_type: PromiseType = Field(default=PromiseType.FORESHADOWING, description="承诺类型")
    scope: PromiseScope = Field(default=PromiseScope.ACT, description="承诺作用域")
    resolution_hint: str = Field(default="", description="兑现方式提示")
    suggested_urgency: Urgency = Field(default=Urgency.MEDIUM, description="建议紧迫度")


class TrackedPromise(BaseModel):
    """已分配 ID、随页面老化的承诺。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="承诺 ID，格式 'pr-<n>'")
    description: str = Field(description="承诺描述")
    promise_type: PromiseType = Field(description="承诺类型")
    scope: PromiseScope = Field(description="承诺作用域")
    resolution_hint: str = Field(default="", description="兑现方式提示")
    suggested_urgency: Urgency = Field(default=Urgency.MEDIUM, description="建议紧迫度")
    age: int = Field(default=0, ge=0, description="未兑现经过的页数")


class ThreadPayoffAssessment(BoundaryModel):
    """分析器对某条线索兑现质量的判断。"""

    thread_id: str = Field(description="线索 ID")
    thread_text: str = Field(default="", description="线索文本")
    satisfaction_level: SatisfactionLevel = Field(default="ADEQUATE", description="兑现满意度")
    reasoning: str = Field(default="", description="判断理由")


class PromisePayoffAssessment(BoundaryModel):
    """分析器对某个承诺兑现质量的判断。"""

    promise_id: str = Field(description="承诺 ID")
    description: str = Field(default="", description="承诺描述")
    satisfaction_level: SatisfactionLevel = Field(default="ADEQUATE", description="兑现满意度")
    reasoning: str = Field(default="", description="判断理由")


class ResolvedThreadMeta(BaseModel):
    """本页回收线索的展示元数据。"""

    model_config = ConfigDict(frozen=True)

    thread_type: ThreadType
    urgency: Urgency


class ResolvedPromiseMeta(BaseModel):
    """本页兑现承诺的展示元数据。"""

    model_config = ConfigDict(frozen=True)

    promise_type: PromiseType
    scope: PromiseScope
    urgency: Urgency
