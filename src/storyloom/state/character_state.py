"""角色状态累积。

每个角色一份带 ID 的状态列表，前缀 cs，按角色独立计数。
本层按角色名精确匹配，不做大小写归一。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from storyloom.errors import DeltaParseError
from storyloom.models.delta import CharacterStateAddition, CharacterStateRemoval
from storyloom.models.keyed_entry import KeyedEntry
from storyloom.models.page import AccumulationDiagnostic
from storyloom.state.identity import IdentityAllocator, allocate_entries
from storyloom.state.keyed_state import apply_keyed_changes, ensure_string_list

logger = logging.getLogger(__name__)


def _character_name(raw: str) -> str:
    if not isinstance(raw, str):
        raise DeltaParseError(f"character name must be a string, got {type(raw).__name__}")
    return raw.strip()


def allocate_character_states(
    additions: Sequence[CharacterStateAddition],
    allocator: IdentityAllocator,
) -> dict[str, list[KeyedEntry]]:
    """为每个角色的新增状态分配 ID。同名的多条新增按出现顺序合并。"""
    allocated: dict[str, list[KeyedEntry]] = {}
    for addition in additions:
        name = _character_name(addition.character_name)
        if not name:
            continue
        states = ensure_string_list(addition.states, f"character state of {name!r}")
        entries = allocate_entries(states, allocator, "cs", scope=name)
        if entries:
            allocated.setdefault(name, []).extend(entries)
    return allocated


def apply_character_state_changes(
    parent: Mapping[str, tuple[KeyedEntry, ...]],
    added: Mapping[str, Sequence[KeyedEntry]],
    removals: Sequence[CharacterStateRemoval],
) -> tuple[dict[str, tuple[KeyedEntry, ...]], list[AccumulationDiagnostic]]:
    """应用角色状态的移除与新增。

    移除 ID 只在该角色自己的列表里查找；列表清空的角色从映射中删除
    （其计数器仍保留在快照的 id_counters 里）。
    """
    removed_by_name: dict[str, list[str]] = {}
    for removal in removals:
        name = _character_name(removal.character_name)
        if not name:
            continue
        ids = ensure_string_list(removal.ids, f"character state removals of {name!r}")
        removed_by_name.setdefault(name, []).extend(ids)

    result: dict[str, tuple[KeyedEntry, ...]] = dict(parent)
    diagnostics: list[AccumulationDiagnostic] = []

    # 父页角色顺序在前，新角色按首次出现顺序追加
    touched = list(dict.fromkeys([*removed_by_name, *added]))
    for name in touched:
        entries, diags = apply_keyed_changes(
            parent.get(name, ()),
            added.get(name, ()),
            removed_by_name.get(name, ()),
            "character_state",
            subject=name,
        )
        diagnostics.extend(diags)
        if entries:
            result[name] = entries
        elif name in result:
            logger.debug("角色 %s 的状态已清空，从映射中移除", name)
            del result[name]

    return result, diagnostics
