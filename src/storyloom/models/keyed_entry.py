"""带稳定 ID 的状态条目模型。

服务端分配的顺序 ID（如 "inv-1"、"cs-3"）取代文本匹配或 LLM 自造的键，
让移除操作可以精确命中目标条目。
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from storyloom.errors import KeyedEntryIdError

StateIdPrefix = Literal["inv", "hp", "cs", "th", "cn", "td", "pr"]

STATE_ID_PREFIXES: tuple[str, ...] = ("inv", "hp", "cs", "th", "cn", "td", "pr")

_ID_PATTERN = re.compile(r"^([a-z]+)-(\d+)$")


class ThreadType(str, Enum):
    """剧情线索类型。"""

    MYSTERY = "MYSTERY"
    QUEST = "QUEST"
    RELATIONSHIP = "RELATIONSHIP"
    DANGER = "DANGER"
    INFORMATION = "INFORMATION"
    RESOURCE = "RESOURCE"
    MORAL = "MORAL"


class Urgency(str, Enum):
    """紧迫程度。"""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ThreatType(str, Enum):
    """威胁类型。"""

    HOSTILE_AGENT = "HOSTILE_AGENT"
    ENVIRONMENTAL = "ENVIRONMENTAL"
    CREATURE = "CREATURE"


class ConstraintType(str, Enum):
    """约束类型。"""

    PHYSICAL = "PHYSICAL"
    ENVIRONMENTAL = "ENVIRONMENTAL"
    TEMPORAL = "TEMPORAL"


class KeyedEntry(BaseModel):
    """一条带 ID 的状态条目（物品、伤病、角色状态……）。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="条目 ID，格式 '<prefix>-<n>'")
    text: str = Field(description="条目文本")


class ThreadEntry(KeyedEntry):
    """开放中的剧情线索。"""

    thread_type: ThreadType = Field(default=ThreadType.INFORMATION, description="线索类型")
    urgency: Urgency = Field(default=Urgency.MEDIUM, description="紧迫程度")


class ThreatEntry(KeyedEntry):
    """当前生效的威胁。"""

    threat_type: ThreatType = Field(default=ThreatType.HOSTILE_AGENT, description="威胁类型")


class ConstraintEntry(KeyedEntry):
    """当前生效的约束。"""

    constraint_type: ConstraintType = Field(
        default=ConstraintType.PHYSICAL, description="约束类型"
    )


class TaggedEntry(BaseModel):
    """旧格式 "THREAT_x: 描述" 在边界处拆分后的结构。"""

    model_config = ConfigDict(frozen=True)

    alias: str = Field(default="", description="旧格式标签，如 'THREAT_wolves'")
    description: str = Field(description="条目文本")


class ActiveState(BaseModel):
    """此刻为真的局面：位置、威胁、约束、开放线索。"""

    model_config = ConfigDict(frozen=True)

    current_location: str = Field(default="", description="当前位置")
    active_threats: tuple[ThreatEntry, ...] = Field(default=(), description="当前威胁")
    active_constraints: tuple[ConstraintEntry, ...] = Field(default=(), description="当前约束")
    open_threads: tuple[ThreadEntry, ...] = Field(default=(), description="开放线索")


def parse_entry_id(entry_id: str) -> tuple[str, int]:
    """拆分条目 ID 为 (prefix, n)。格式不合法时抛出 KeyedEntryIdError。"""
    match = _ID_PATTERN.match(entry_id)
    if match is None:
        raise KeyedEntryIdError(f"Malformed keyed entry ID: {entry_id!r}")
    return match.group(1), int(match.group(2))


def extract_id_number(entry_id: str) -> int:
    return parse_entry_id(entry_id)[1]


def id_number_if_valid(entry_id: str, prefix: str) -> int | None:
    """ID 属于给定前缀时返回其序号，否则返回 None（不抛异常）。"""
    match = _ID_PATTERN.match(entry_id.strip())
    if match is None or match.group(1) != prefix:
        return None
    return int(match.group(2))


def max_id_number(entries: tuple[KeyedEntry, ...] | list[KeyedEntry], prefix: str) -> int:
    """扫描条目列表，返回该前缀下出现过的最大序号（没有则为 0）。"""
    highest = 0
    prefix_dash = f"{prefix}-"
    for entry in entries:
        if not entry.id.startswith(prefix_dash):
            continue
        number = extract_id_number(entry.id)
        if number > highest:
            highest = number
    return highest


_TAG_PATTERN = re.compile(r"^(THREAT|CONSTRAINT|THREAD)_[^:\s]+$")


def split_tagged_text(raw: str) -> TaggedEntry:
    """把旧格式 "THREAT_x: 描述" 拆成 (alias, description)。

    不带合法标签的文本原样作为 description 返回。
    """
    trimmed = raw.strip()
    head, sep, tail = trimmed.partition(":")
    if not sep or not _TAG_PATTERN.match(head.strip()):
        return TaggedEntry(description=trimmed)
    description = tail.strip()
    if not description:
        return TaggedEntry(description=trimmed)
    return TaggedEntry(alias=head.strip(), description=description)
