"""设定（canon）账本模型。"""

from pydantic import BaseModel, ConfigDict, Field

from storyloom.models.base import ReadOnlyMap


class CanonStore(BaseModel):
    """只增不删的设定账本：全局设定 + 角色设定。

    角色名的键保留首次出现时的大小写。
    """

    model_config = ConfigDict(frozen=True, validate_default=True)

    global_facts: tuple[str, ...] = Field(default=(), description="全局世界设定")
    character_facts: ReadOnlyMap[str, tuple[str, ...]] = Field(
        default_factory=dict, description="角色名 → 角色设定"
    )
