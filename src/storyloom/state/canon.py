"""设定账本：只增不删，去重，无变化时返回原对象。

全局设定按去掉首尾空白后的原文精确去重；角色设定的角色名查找和
同角色内的去重都忽略大小写，但存储的键与设定文本保留原样。
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

from storyloom.models.canon import CanonStore

logger = logging.getLogger(__name__)

_NEGATION_PATTERNS = ("is not", "does not", "never", "no longer", "was destroyed", "died")

_STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "from",
        "has", "have", "in", "is", "it", "its", "of", "on", "or", "that", "the",
        "their", "to", "was", "were", "with",
    }
)

_TOKEN_PATTERN = re.compile(r"[a-z0-9']+")


def find_character_key(store: CanonStore, character_name: str) -> str | None:
    """按忽略大小写查找角色键；多个键同时匹配时取最先出现的。"""
    folded = character_name.strip().casefold()
    for key in store.character_facts:
        if key.casefold() == folded:
            return key
    return None


def add_fact(store: CanonStore, subject: str | None, fact: str) -> CanonStore:
    """添加一条设定。subject 为 None 表示全局设定，否则为角色名。

    空设定或已存在的设定返回 store 本身（可用 ``is`` 判断是否无变化）。
    """
    trimmed = fact.strip()
    if not trimmed:
        return store

    if subject is None:
        if trimmed in (f.strip() for f in store.global_facts):
            return store
        return store.model_copy(update={"global_facts": (*store.global_facts, trimmed)})

    name = subject.strip()
    if not name:
        return store
    key = find_character_key(store, name)
    existing = store.character_facts.get(key, ()) if key is not None else ()
    folded = trimmed.casefold()
    if any(f.strip().casefold() == folded for f in existing):
        return store

    character_facts = dict(store.character_facts)
    character_facts[key or name] = (*existing, trimmed)
    return CanonStore(global_facts=store.global_facts, character_facts=character_facts)


def merge_canon_facts(
    store: CanonStore,
    global_facts: Iterable[str] = (),
    character_facts: Mapping[str, Iterable[str]] | None = None,
) -> CanonStore:
    """批量合并；全部无变化时返回原对象。"""
    result = store
    for fact in global_facts:
        result = add_fact(result, None, fact)
    for name, facts in (character_facts or {}).items():
        for fact in facts:
            result = add_fact(result, name, fact)
    return result


def get_character_facts(store: CanonStore, character_name: str) -> tuple[str, ...]:
    key = find_character_key(store, character_name)
    if key is None:
        return ()
    return store.character_facts[key]


# ──────────────────────────────────────────
# 矛盾检测（启发式）
# ──────────────────────────────────────────


def _has_negation(fact: str) -> bool:
    return any(pattern in fact for pattern in _NEGATION_PATTERNS)


def _entity_tokens(fact: str) -> set[str]:
    return {
        token
        for token in _TOKEN_PATTERN.findall(fact)
        if len(token) > 3 and token not in _STOP_WORDS
    }


def might_contradict(existing_facts: Iterable[str], new_fact: str) -> bool:
    """新设定与某条已有设定否定极性不同、且共享实体词时视为疑似矛盾。"""
    normalized = new_fact.lower()
    new_negated = _has_negation(normalized)
    new_tokens = _entity_tokens(normalized)

    for existing in existing_facts:
        normalized_existing = existing.lower()
        if _has_negation(normalized_existing) == new_negated:
            continue
        if new_tokens & _entity_tokens(normalized_existing):
            return True
    return False


def find_potential_contradictions(store: CanonStore, new_facts: Iterable[str]) -> list[str]:
    """返回疑似与全局设定矛盾的新设定。仅供告警，不阻止写入。"""
    return [fact for fact in new_facts if might_contradict(store.global_facts, fact)]
