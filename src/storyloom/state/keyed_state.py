"""带 ID 条目的通用累积器（物品、伤病、威胁、约束）。

先按 ID 移除，再把新条目追加到末尾。不重排、不按内容去重：
两次捡到同名的剑就是两条不同 ID 的条目。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, TypeVar

from storyloom.errors import DeltaParseError
from storyloom.models.keyed_entry import KeyedEntry
from storyloom.models.page import AccumulationDiagnostic, DiagnosticCategory
from storyloom.state.identity import IdentityAllocator, allocate_entries

logger = logging.getLogger(__name__)

EntryT = TypeVar("EntryT", bound=KeyedEntry)


def ensure_string_list(value: Any, field_name: str) -> list[str]:
    """校验增量字段是字符串列表，否则抛出 DeltaParseError。"""
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        raise DeltaParseError(
            f"{field_name} must be a list of strings, got {type(value).__name__}"
        )
    for item in value:
        if not isinstance(item, str):
            raise DeltaParseError(
                f"{field_name} must contain only strings, got {type(item).__name__}"
            )
    return list(value)


def apply_keyed_changes(
    parent_entries: Sequence[EntryT],
    added_entries: Sequence[EntryT],
    removed_ids: Sequence[str],
    category: DiagnosticCategory,
    subject: str | None = None,
) -> tuple[tuple[EntryT, ...], list[AccumulationDiagnostic]]:
    """对父列表应用移除与追加，返回 (新列表, 诊断)。

    移除不存在的 ID 不会中断处理，只记录一条诊断。
    """
    removed_ids = ensure_string_list(removed_ids, f"{category} removals")
    entries = list(parent_entries)
    diagnostics: list[AccumulationDiagnostic] = []

    for raw_id in removed_ids:
        entry_id = raw_id.strip()
        if not entry_id:
            continue
        index = next((i for i, e in enumerate(entries) if e.id == entry_id), None)
        if index is None:
            logger.warning(
                "未知的移除 ID: category=%s id=%s subject=%s", category, entry_id, subject
            )
            diagnostics.append(
                AccumulationDiagnostic(category=category, ref_id=entry_id, subject=subject)
            )
            continue
        del entries[index]

    entries.extend(added_entries)
    return tuple(entries), diagnostics


def accumulate_keyed(
    parent_entries: Sequence[KeyedEntry],
    added: Sequence[str],
    removed: Sequence[str],
    allocator: IdentityAllocator,
    prefix: str,
    category: DiagnosticCategory,
) -> tuple[tuple[KeyedEntry, ...], list[AccumulationDiagnostic]]:
    """纯文本条目的累积：为 added 分配 ID 后交给 apply_keyed_changes。"""
    added = ensure_string_list(added, f"{category} additions")
    new_entries = allocate_entries(added, allocator, prefix)
    return apply_keyed_changes(parent_entries, new_entries, removed, category)
