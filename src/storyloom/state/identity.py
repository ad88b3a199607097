"""分支安全的 ID 分配。

计数器不是进程级全局变量：每次构建页面时从父页快照携带的 id_counters
（或沿祖先路径扫描出的最大序号）播种一个新的分配器，用完即弃。
兄弟分支各自从同一父页播种，互不可见。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence

from storyloom.models.keyed_entry import KeyedEntry, max_id_number, parse_entry_id
from storyloom.models.page import PageSnapshot

logger = logging.getLogger(__name__)


def counter_key(prefix: str, scope: str | None = None) -> str:
    """计数器键。角色状态按角色独立计数：'cs:<角色名>'。"""
    if scope is None:
        return prefix
    return f"{prefix}:{scope}"


class IdentityAllocator:
    """单次页面构建内使用的 ID 分配器。计数器只增不减。"""

    def __init__(self, counters: Mapping[str, int] | None = None) -> None:
        self._counters: dict[str, int] = dict(counters or {})

    def peek(self, prefix: str, scope: str | None = None) -> int:
        return self._counters.get(counter_key(prefix, scope), 0)

    def mint(self, prefix: str, scope: str | None = None) -> str:
        key = counter_key(prefix, scope)
        n = self._counters.get(key, 0) + 1
        self._counters[key] = n
        return f"{prefix}-{n}"

    def observe(self, entry_id: str, scope: str | None = None) -> None:
        """登记一个已存在的 ID，把计数器抬到至少该序号。"""
        prefix, n = parse_entry_id(entry_id)
        key = counter_key(prefix, scope)
        if n > self._counters.get(key, 0):
            self._counters[key] = n

    @property
    def counters(self) -> dict[str, int]:
        return dict(self._counters)


def allocate_entries(
    texts: Iterable[str],
    allocator: IdentityAllocator,
    prefix: str,
    scope: str | None = None,
) -> list[KeyedEntry]:
    """为新增文本分配 ID。空白文本跳过，不消耗序号。"""
    entries: list[KeyedEntry] = []
    for text in texts:
        trimmed = text.strip()
        if not trimmed:
            continue
        entries.append(KeyedEntry(id=allocator.mint(prefix, scope), text=trimmed))
    return entries


def _scan_counters(snapshot: PageSnapshot) -> dict[str, int]:
    """从快照自身的列表扫描出各前缀的最大序号（用于没有携带计数器的旧数据）。"""
    active = snapshot.accumulated_active_state
    counters = {
        "inv": max_id_number(snapshot.accumulated_inventory, "inv"),
        "hp": max_id_number(snapshot.accumulated_health, "hp"),
        "th": max_id_number(active.active_threats, "th"),
        "cn": max_id_number(active.active_constraints, "cn"),
        "td": max_id_number(active.open_threads, "td"),
        "pr": max_id_number(snapshot.accumulated_promises, "pr"),
    }
    for name, entries in snapshot.accumulated_character_state.items():
        counters[counter_key("cs", name)] = max_id_number(entries, "cs")
    # 已回收的线索/承诺也占用过序号
    for thread_id in (*snapshot.resolved_thread_meta, *snapshot.thread_ages):
        prefix, n = parse_entry_id(thread_id)
        if prefix == "td" and n > counters["td"]:
            counters["td"] = n
    for promise_id in snapshot.resolved_promise_meta:
        prefix, n = parse_entry_id(promise_id)
        if prefix == "pr" and n > counters["pr"]:
            counters["pr"] = n
    return {key: value for key, value in counters.items() if value > 0}


def _merge_max(target: dict[str, int], source: Mapping[str, int]) -> None:
    for key, value in source.items():
        if value > target.get(key, 0):
            target[key] = value


def counters_from_snapshot(snapshot: PageSnapshot | None) -> dict[str, int]:
    """父页的计数器：携带的 id_counters 与列表扫描结果取最大值。"""
    if snapshot is None:
        return {}
    counters = dict(snapshot.id_counters)
    _merge_max(counters, _scan_counters(snapshot))
    return counters


def derive_counters(lineage: Sequence[PageSnapshot]) -> dict[str, int]:
    """沿根 → 父页路径取各前缀的最大序号。

    只读取这一条路径，兄弟分支的分配结果不会混入。
    """
    counters: dict[str, int] = {}
    for snapshot in lineage:
        _merge_max(counters, counters_from_snapshot(snapshot))
    logger.debug("沿 %d 个祖先推导出计数器: %s", len(lineage), counters)
    return counters
