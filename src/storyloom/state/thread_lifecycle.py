"""剧情线索的生命周期：开启、回收、分析器补充回收、老化。"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from storyloom.config.settings import EngineConfig
from storyloom.models.delta import ThreadAddition
from storyloom.models.keyed_entry import ThreadEntry
from storyloom.models.page import AccumulationDiagnostic
from storyloom.models.promise import ResolvedThreadMeta, ThreadPayoffAssessment
from storyloom.state.identity import IdentityAllocator
from storyloom.state.keyed_state import apply_keyed_changes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThreadLifecycleResult:
    """一次线索累积的结果。"""

    open_threads: tuple[ThreadEntry, ...]
    thread_ages: dict[str, int]
    resolved_meta: dict[str, ResolvedThreadMeta]
    diagnostics: list[AccumulationDiagnostic] = field(default_factory=list)


def allocate_threads(
    additions: Sequence[ThreadAddition],
    allocator: IdentityAllocator,
    config: EngineConfig | None = None,
) -> list[ThreadEntry]:
    """为新线索分配 td-<n>。空白文本跳过。

    增量里没有给出类型或紧迫度的线索使用配置中的默认值。
    """
    config = config or EngineConfig()
    threads: list[ThreadEntry] = []
    for addition in additions:
        text = addition.text.strip()
        if not text:
            continue
        explicit = addition.model_fields_set
        threads.append(
            ThreadEntry(
                id=allocator.mint("td"),
                text=text,
                thread_type=(
                    addition.thread_type
                    if "thread_type" in explicit
                    else config.default_thread_type
                ),
                urgency=addition.urgency if "urgency" in explicit else config.default_urgency,
            )
        )
    return threads


def augment_threads_resolved(
    parent_threads: Sequence[ThreadEntry],
    threads_resolved: Sequence[str],
    assessments: Sequence[ThreadPayoffAssessment],
) -> list[str]:
    """合并生成器的显式回收与分析器的兑现评估。

    显式回收的 ID 原样保留且优先；分析器只能补充生成器没提到、
    且确实在父页开放线索中的 ID。
    """
    explicit = [tid.strip() for tid in threads_resolved if tid.strip()]
    resolved = list(dict.fromkeys(explicit))
    open_ids = {t.id for t in parent_threads}

    for assessment in assessments:
        thread_id = assessment.thread_id.strip()
        if not thread_id or thread_id in resolved:
            continue
        if thread_id not in open_ids:
            logger.debug("忽略分析器评估中不在开放线索里的 ID: %s", thread_id)
            continue
        logger.info(
            "分析器补充回收线索 %s (%s)", thread_id, assessment.satisfaction_level
        )
        resolved.append(thread_id)
    return resolved


def build_resolved_thread_meta(
    parent_threads: Sequence[ThreadEntry],
    resolved_ids: Sequence[str],
) -> dict[str, ResolvedThreadMeta]:
    """为本页回收的线索记录类型与紧迫度，供展示层使用。"""
    by_id = {t.id: t for t in parent_threads}
    meta: dict[str, ResolvedThreadMeta] = {}
    for thread_id in resolved_ids:
        thread = by_id.get(thread_id)
        if thread is None:
            continue
        meta[thread_id] = ResolvedThreadMeta(
            thread_type=thread.thread_type, urgency=thread.urgency
        )
    return meta


def compute_thread_ages(
    parent_ages: Mapping[str, int],
    open_threads: Sequence[ThreadEntry],
    new_thread_ids: set[str],
) -> dict[str, int]:
    """本页仍开放的旧线索 +1，新线索从 0 开始；已回收的不再出现。"""
    ages: dict[str, int] = {}
    for thread in open_threads:
        if thread.id in new_thread_ids:
            ages[thread.id] = 0
        else:
            ages[thread.id] = parent_ages.get(thread.id, 0) + 1
    return ages


def accumulate_threads(
    parent_threads: Sequence[ThreadEntry],
    parent_ages: Mapping[str, int],
    new_threads: Sequence[ThreadEntry],
    threads_resolved: Sequence[str],
    assessments: Sequence[ThreadPayoffAssessment] = (),
) -> ThreadLifecycleResult:
    """线索一步累积：补充回收 → 移除与追加 → 回收元数据 → 老化。"""
    resolved_ids = augment_threads_resolved(parent_threads, threads_resolved, assessments)
    open_threads, diagnostics = apply_keyed_changes(
        parent_threads, new_threads, resolved_ids, "threads"
    )
    return ThreadLifecycleResult(
        open_threads=open_threads,
        thread_ages=compute_thread_ages(parent_ages, open_threads, {t.id for t in new_threads}),
        resolved_meta=build_resolved_thread_meta(parent_threads, resolved_ids),
        diagnostics=diagnostics,
    )
