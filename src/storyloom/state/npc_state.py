"""NPC 议程与关系的覆盖式累积。

每次更新整条替换该 NPC 的记录，其余 NPC 原样继承父页的同一对象。
名称查找忽略大小写，已有 NPC 沿用首次出现时的键。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TypeVar

from storyloom.models.npc import NpcAgenda, NpcRelationship

logger = logging.getLogger(__name__)

NpcRecordT = TypeVar("NpcRecordT", NpcAgenda, NpcRelationship)


def _find_key(record_map: Mapping[str, object], npc_name: str) -> str | None:
    folded = npc_name.casefold()
    for key in record_map:
        if key.casefold() == folded:
            return key
    return None


def apply_npc_updates(
    parent: Mapping[str, NpcRecordT],
    updates: Sequence[NpcRecordT],
) -> Mapping[str, NpcRecordT]:
    """返回新的映射；没有更新时直接返回父映射本身。"""
    if not updates:
        return parent

    result: dict[str, NpcRecordT] = dict(parent)
    for update in updates:
        name = update.npc_name.strip()
        if not name:
            logger.warning("忽略没有 npc_name 的 NPC 更新")
            continue
        key = _find_key(result, name) or name
        result[key] = update
    return result


def accumulate_npc_agendas(
    parent: Mapping[str, NpcAgenda], updates: Sequence[NpcAgenda]
) -> Mapping[str, NpcAgenda]:
    return apply_npc_updates(parent, updates)


def accumulate_npc_relationships(
    parent: Mapping[str, NpcRelationship], updates: Sequence[NpcRelationship]
) -> Mapping[str, NpcRelationship]:
    return apply_npc_updates(parent, updates)
