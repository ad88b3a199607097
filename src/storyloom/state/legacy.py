"""旧格式页面迁移：把纯文本 / 带标签字符串的累积列表转换为带 ID 的条目。

转换按顺序逐条在父页条目池里按原文精确匹配，每个父条目最多被匹配一次；
匹配上的沿用父页 ID，匹配不上的才分配新 ID。文本未变的条目因此不会
在子页得到重复的 ID。
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic.alias_generators import to_snake

from storyloom.models.keyed_entry import (
    ActiveState,
    ConstraintEntry,
    KeyedEntry,
    ThreadEntry,
    ThreatEntry,
    id_number_if_valid,
    split_tagged_text,
)
from storyloom.models.page import PageSnapshot
from storyloom.state.identity import IdentityAllocator, counters_from_snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LegacyConversion:
    entries: tuple[KeyedEntry, ...]
    aliases: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MigratedPage:
    """迁移后的页面，以及子页迁移时需要继承的别名表。"""

    snapshot: PageSnapshot
    threat_aliases: dict[str, str] = field(default_factory=dict)
    constraint_aliases: dict[str, str] = field(default_factory=dict)
    thread_aliases: dict[str, str] = field(default_factory=dict)


def _consume_by_text(
    candidates: Sequence[KeyedEntry], text: str, consumed: set[int]
) -> KeyedEntry | None:
    for index, candidate in enumerate(candidates):
        if index in consumed:
            continue
        if candidate.text == text:
            consumed.add(index)
            return candidate
    return None


def _keyed_fields(item: Mapping[str, Any]) -> dict[str, Any]:
    return {to_snake(key): value for key, value in item.items()}


def convert_legacy_entries(
    items: Any,
    parent_entries: Sequence[KeyedEntry],
    prefix: str,
    allocator: IdentityAllocator,
    inherited_aliases: Mapping[str, str] | None = None,
    *,
    entry_type: type[KeyedEntry] = KeyedEntry,
    scope: str | None = None,
) -> LegacyConversion:
    """把一个旧格式列表转换为带 ID 的条目。

    每个元素可以是：已带 ID 的 {id, text}（原样保留，计数器抬到其序号）、
    {prefix, description} 标签对象、"TAG_x: 描述" 字符串或纯文本。
    """
    if not isinstance(items, (list, tuple)):
        if items is not None:
            logger.warning("旧格式 %s 列表不是数组，按空列表处理: %r", prefix, items)
        items = []

    consumed: set[int] = set()
    entries: list[KeyedEntry] = []
    aliases: dict[str, str] = {}

    for item in items:
        text: str | None = None
        alias = ""

        if isinstance(item, Mapping) and isinstance(item.get("id"), str) and isinstance(
            item.get("text"), str
        ):
            if id_number_if_valid(item["id"], prefix) is not None:
                fields = _keyed_fields(item)
                fields["id"] = item["id"].strip()
                allocator.observe(fields["id"], scope)
                entries.append(entry_type.model_validate(fields))
                continue
            logger.warning("条目 ID %r 不属于前缀 %s，按文本重新分配", item["id"], prefix)
            text = item["text"]
        elif isinstance(item, Mapping) and isinstance(item.get("description"), str):
            text = item["description"].strip()
            alias = str(item.get("prefix", "")).strip()
        elif isinstance(item, str):
            tagged = split_tagged_text(item)
            text, alias = tagged.description, tagged.alias
        else:
            logger.warning("跳过无法识别的旧格式 %s 条目: %r", prefix, item)
            continue

        if not text:
            continue

        parent_match = _consume_by_text(parent_entries, text, consumed)
        if parent_match is not None:
            entry = parent_match
        else:
            entry = entry_type(id=allocator.mint(prefix, scope), text=text)
        entries.append(entry)
        if alias:
            aliases[alias] = entry.id

    present = {e.id for e in entries}
    for alias, entry_id in (inherited_aliases or {}).items():
        if alias not in aliases and entry_id in present:
            aliases[alias] = entry_id

    return LegacyConversion(entries=tuple(entries), aliases=aliases)


def _legacy_thread_ages(raw_ages: Any, threads: Sequence[KeyedEntry]) -> dict[str, int]:
    """沿用旧页面记录的线索年龄；没有记录的按 0。"""
    ages = raw_ages if isinstance(raw_ages, Mapping) else {}
    result: dict[str, int] = {}
    for thread in threads:
        age = ages.get(thread.id, 0)
        result[thread.id] = age if isinstance(age, int) and age >= 0 else 0
    return result


def migrate_legacy_page(
    raw: Mapping[str, Any],
    parent: MigratedPage | None = None,
    page_id: int | None = None,
) -> MigratedPage:
    """迁移单个旧格式页面（camelCase 键）。父页必须已经迁移。"""
    parent_snapshot = parent.snapshot if parent is not None else None
    allocator = IdentityAllocator(counters_from_snapshot(parent_snapshot))
    parent_state = parent_snapshot.accumulated_active_state if parent_snapshot else ActiveState()

    inventory = convert_legacy_entries(
        raw.get("accumulatedInventory"),
        parent_snapshot.accumulated_inventory if parent_snapshot else (),
        "inv",
        allocator,
    )
    health = convert_legacy_entries(
        raw.get("accumulatedHealth"),
        parent_snapshot.accumulated_health if parent_snapshot else (),
        "hp",
        allocator,
    )

    character_state: dict[str, tuple[KeyedEntry, ...]] = {}
    raw_characters = raw.get("accumulatedCharacterState") or {}
    if not isinstance(raw_characters, Mapping):
        logger.warning("accumulatedCharacterState 不是对象，按空处理")
        raw_characters = {}
    for name, raw_entries in raw_characters.items():
        parent_entries = (
            parent_snapshot.accumulated_character_state.get(name, ()) if parent_snapshot else ()
        )
        converted = convert_legacy_entries(raw_entries, parent_entries, "cs", allocator, scope=name)
        if converted.entries:
            character_state[name] = converted.entries

    raw_active = raw.get("accumulatedActiveState") or {}
    if not isinstance(raw_active, Mapping):
        raw_active = {}
    threats = convert_legacy_entries(
        raw_active.get("activeThreats"),
        parent_state.active_threats,
        "th",
        allocator,
        parent.threat_aliases if parent else None,
        entry_type=ThreatEntry,
    )
    constraints = convert_legacy_entries(
        raw_active.get("activeConstraints"),
        parent_state.active_constraints,
        "cn",
        allocator,
        parent.constraint_aliases if parent else None,
        entry_type=ConstraintEntry,
    )
    threads = convert_legacy_entries(
        raw_active.get("openThreads"),
        parent_state.open_threads,
        "td",
        allocator,
        parent.thread_aliases if parent else None,
        entry_type=ThreadEntry,
    )

    location = raw_active.get("currentLocation")
    if not isinstance(location, str):
        location = parent_state.current_location

    resolved_id = page_id if page_id is not None else raw.get("id")
    parent_id = raw.get("parentPageId")
    snapshot = PageSnapshot(
        id=resolved_id,
        parent_id=parent_id if isinstance(parent_id, int) else None,
        structure_version_id=raw.get("structureVersionId"),
        accumulated_active_state=ActiveState(
            current_location=location,
            active_threats=threats.entries,
            active_constraints=constraints.entries,
            open_threads=threads.entries,
        ),
        accumulated_inventory=inventory.entries,
        accumulated_health=health.entries,
        accumulated_character_state=character_state,
        thread_ages=_legacy_thread_ages(raw.get("threadAges"), threads.entries),
        id_counters=allocator.counters,
    )
    return MigratedPage(
        snapshot=snapshot,
        threat_aliases=threats.aliases,
        constraint_aliases=constraints.aliases,
        thread_aliases=threads.aliases,
    )


def page_traversal_order(raw_pages: Mapping[int, Mapping[str, Any]]) -> list[int]:
    """父页先于子页的广度优先顺序。

    父页不存在的页面视为根；页面 1 排在所有根之前。
    """
    children: dict[int, list[int]] = {}
    roots: list[int] = []
    for page_id, page in raw_pages.items():
        parent_id = page.get("parentPageId")
        if not isinstance(parent_id, int) or parent_id not in raw_pages:
            roots.append(page_id)
            continue
        children.setdefault(parent_id, []).append(page_id)

    roots.sort()
    if 1 in roots:
        roots.remove(1)
        roots.insert(0, 1)

    order: list[int] = []
    visited: set[int] = set()
    queue = deque(roots)
    while queue:
        page_id = queue.popleft()
        if page_id in visited:
            continue
        visited.add(page_id)
        order.append(page_id)
        queue.extend(sorted(children.get(page_id, [])))

    # 环上的页面没有根可达，按 ID 补在最后
    order.extend(pid for pid in sorted(raw_pages) if pid not in visited)
    return order


def migrate_legacy_chain(raw_pages: Sequence[Mapping[str, Any]]) -> dict[int, PageSnapshot]:
    """迁移整棵旧格式页面树，返回 页面 ID → 快照。"""
    by_id: dict[int, Mapping[str, Any]] = {}
    for raw in raw_pages:
        page_id = raw.get("id")
        if not isinstance(page_id, int):
            raise ValueError(f"Legacy page without integer id: {raw!r}")
        by_id[page_id] = raw

    migrated: dict[int, MigratedPage] = {}
    for page_id in page_traversal_order(by_id):
        raw = by_id[page_id]
        parent_id = raw.get("parentPageId")
        parent = migrated.get(parent_id) if isinstance(parent_id, int) else None
        migrated[page_id] = migrate_legacy_page(raw, parent, page_id)
        logger.debug("已迁移页面 %d", page_id)

    logger.info("旧格式迁移完成: %d 页", len(migrated))
    return {page_id: page.snapshot for page_id, page in migrated.items()}
