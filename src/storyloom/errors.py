"""异常体系。

- 局部诊断（未知移除 ID 等）不是异常，而是随结果一起返回的诊断列表。
- 调用方契约违规（无结语推进节拍、越界索引、重写节拍不足）直接抛出，
  当前页面构建整体中止。
"""


class StoryloomError(Exception):
    """所有 storyloom 异常的基类。"""


class DeltaParseError(StoryloomError, ValueError):
    """外部生成器/分析器的输出无法转换为内部类型。"""


class KeyedEntryIdError(StoryloomError, ValueError):
    """条目 ID 不符合 ``<prefix>-<n>`` 格式。"""


class StructureProgressionError(StoryloomError, ValueError):
    """结构推进的前置条件不满足。"""


class StructureRewriteError(StoryloomError):
    """结构重写结果无法覆盖剩余幕次，调用方需要重新生成。"""
