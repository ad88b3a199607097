"""模型公共部分：外部协作者输出的基类与只读映射类型。"""

from types import MappingProxyType
from typing import Annotated, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, WrapSerializer
from pydantic.alias_generators import to_camel

K = TypeVar("K")
V = TypeVar("V")

# 快照里的映射字段：校验后包成 MappingProxyType，原地修改会抛 TypeError；
# 序列化时还原为普通 dict。
ReadOnlyMap = Annotated[
    dict[K, V],
    AfterValidator(MappingProxyType),
    WrapSerializer(lambda value, handler: handler(dict(value))),
]


class BoundaryModel(BaseModel):
    """生成器 / 分析器 / 结构生成器的输出。

    同时接受 camelCase（外部 JSON）与 snake_case（内部构造）两种键名，
    未知字段直接忽略。
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )
