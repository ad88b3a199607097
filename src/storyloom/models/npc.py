"""NPC 议程与关系模型。"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NpcAgenda(BaseModel):
    """NPC 在幕后推进的议程。每次更新都是整条替换。"""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    npc_name: str = Field(description="NPC 名称")
    current_goal: str = Field(default="", description="当前目标")
    leverage: str = Field(default="", description="手中筹码")
    fear: str = Field(default="", description="最害怕的事")
    off_screen_behavior: str = Field(default="", description="不在场时的行动")


class NpcRelationship(BaseModel):
    """NPC 与主角的关系。"""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    npc_name: str = Field(description="NPC 名称")
    valence: int = Field(default=0, ge=-5, le=5, description="好恶值 -5 ~ +5")
    dynamic: str = Field(default="", description="关系标签：导师、对手、盟友……")
    history: str = Field(default="", description="过往经历（1-2 句）")
    current_tension: str = Field(default="", description="当前张力（1-2 句）")
    leverage: str = Field(default="", description="彼此间的筹码（1 句）")
