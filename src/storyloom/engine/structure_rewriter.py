"""结构重写：保留已完成的节拍，用重新生成的结构替换其余部分。

按幕/拍顺序线性扫描，保留前缀 = 连续的"已完成，或位于当前位置之前且未被判失效"
的节拍，遇到第一个不满足的节拍即截断。重新生成的节拍按幕下标接在保留前缀之后，
编号保持连续。
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from storyloom.errors import StructureRewriteError
from storyloom.models.structure import (
    AccumulatedStructureState,
    BeatProgression,
    GeneratedAct,
    StoryAct,
    StoryBeat,
    StoryStructure,
    StructureGenerationResult,
    StructureVersion,
)

logger = logging.getLogger(__name__)

_VERSION_NAMESPACE = uuid.UUID("6f1c2d8e-6a7b-4f38-9a55-2f3e1c0b7d41")


@dataclass(frozen=True)
class RewriteResult:
    structure: StoryStructure
    preserved_beat_ids: tuple[str, ...]


def _beat_signature(description: str, objective: str) -> tuple[str, str]:
    return description, objective


def partition_preserved(
    structure: StoryStructure,
    state: AccumulatedStructureState,
    invalidated_beat_ids: Sequence[str],
) -> tuple[list[tuple[int, int]], tuple[int, int] | None]:
    """返回 (保留节拍的 (幕, 拍) 下标列表, 截断位置)。

    已完成的节拍总是保留，即使出现在 invalidated_beat_ids 中。
    截断位置之后若还有已完成的节拍，说明状态与结构不一致，抛出 StructureRewriteError。
    """
    status_by_id = {p.beat_id: p.status for p in state.beat_progressions}
    invalidated = {beat_id.strip() for beat_id in invalidated_beat_ids}
    position = (state.current_act_index, state.current_beat_index)

    preserved: list[tuple[int, int]] = []
    cut: tuple[int, int] | None = None
    for act_index, act in enumerate(structure.acts):
        for beat_index, beat in enumerate(act.beats):
            index = (act_index, beat_index)
            concluded = status_by_id.get(beat.id) == "concluded"
            if cut is None:
                if concluded or (index < position and beat.id not in invalidated):
                    if concluded and beat.id in invalidated:
                        logger.warning("已完成的节拍 %s 不能被判失效，仍然保留", beat.id)
                    preserved.append(index)
                    continue
                cut = index
            elif concluded:
                raise StructureRewriteError(
                    f"Concluded beat {beat.id} lies after the rewrite point "
                    f"{act_index + 1}.{beat_index + 1}"
                )
    return preserved, cut


def _regenerated_beats(
    act_index: int,
    generated: GeneratedAct,
    preserved_beats: Sequence[StoryBeat],
) -> list[StoryBeat]:
    """把重新生成的节拍接在保留前缀之后，跳过与已有节拍内容重复的。"""
    seen = {_beat_signature(b.description, b.objective) for b in preserved_beats}
    next_number = len(preserved_beats)
    beats: list[StoryBeat] = []
    for beat in generated.beats:
        signature = _beat_signature(beat.description, beat.objective)
        if signature in seen:
            continue
        seen.add(signature)
        next_number += 1
        beats.append(
            StoryBeat(
                id=f"{act_index + 1}.{next_number}",
                description=beat.description,
                objective=beat.objective,
            )
        )
    return beats


def rewrite_structure(
    old_structure: StoryStructure,
    state: AccumulatedStructureState,
    invalidated_beat_ids: Sequence[str],
    regenerated: StructureGenerationResult,
) -> RewriteResult:
    """合并保留前缀与重新生成的结构。

    重新生成的结果幕数少于旧结构、某个未被完整保留的幕没有拿到新节拍、
    或整体没有任何可推进的新节拍时，抛出 StructureRewriteError，由调用方重新生成。
    """
    if len(regenerated.acts) < len(old_structure.acts):
        raise StructureRewriteError(
            f"Regenerated structure has {len(regenerated.acts)} acts, "
            f"expected at least {len(old_structure.acts)}"
        )

    preserved, cut = partition_preserved(old_structure, state, invalidated_beat_ids)
    if cut is None:
        raise StructureRewriteError("Every beat is already concluded; nothing to rewrite")
    cut_act_index = cut[0]

    preserved_by_act: dict[int, list[StoryBeat]] = {}
    for act_index, beat_index in preserved:
        preserved_by_act.setdefault(act_index, []).append(
            old_structure.acts[act_index].beats[beat_index]
        )

    acts: list[StoryAct] = []
    for act_index, generated in enumerate(regenerated.acts):
        if act_index < cut_act_index:
            # 截断点之前的幕已全部完成，原样保留（含幕信息）
            acts.append(old_structure.acts[act_index])
            continue

        kept = preserved_by_act.get(act_index, [])
        new_beats = _regenerated_beats(act_index, generated, kept)
        if not new_beats:
            raise StructureRewriteError(
                f"Regenerated structure is missing beats for act {act_index + 1}"
            )
        acts.append(
            StoryAct(
                id=str(act_index + 1),
                name=generated.name,
                objective=generated.objective,
                stakes=generated.stakes,
                entry_condition=generated.entry_condition,
                beats=(*kept, *new_beats),
            )
        )

    preserved_ids = tuple(
        old_structure.acts[a].beats[b].id for a, b in preserved
    )
    logger.info(
        "结构重写: 保留 %d 拍，从 %d.%d 起重新生成，共 %d 幕",
        len(preserved_ids),
        cut[0] + 1,
        cut[1] + 1,
        len(acts),
    )
    return RewriteResult(
        structure=StoryStructure(overall_theme=old_structure.overall_theme, acts=tuple(acts)),
        preserved_beat_ids=preserved_ids,
    )


def rebuild_structure_state_after_rewrite(
    structure: StoryStructure,
    previous_state: AccumulatedStructureState,
    preserved_beat_ids: Sequence[str],
) -> AccumulatedStructureState:
    """重写后的推进状态：保留节拍的进度原样继承，第一个新节拍 active，其余 pending。"""
    previous = {p.beat_id: p for p in previous_state.beat_progressions}
    preserved = set(preserved_beat_ids)

    progressions: list[BeatProgression] = []
    pointer: tuple[int, int] | None = None
    for act_index, act in enumerate(structure.acts):
        for beat_index, beat in enumerate(act.beats):
            if beat.id in preserved:
                # 保留节拍都在当前位置之前，按已完成处理
                kept = previous.get(beat.id)
                if kept is not None and kept.status == "concluded":
                    progressions.append(kept)
                else:
                    progressions.append(
                        BeatProgression(
                            beat_id=beat.id,
                            status="concluded",
                            resolution=kept.resolution if kept else None,
                        )
                    )
                continue
            if pointer is None:
                pointer = (act_index, beat_index)
                progressions.append(BeatProgression(beat_id=beat.id, status="active"))
            else:
                progressions.append(BeatProgression(beat_id=beat.id, status="pending"))

    if pointer is None:
        raise StructureRewriteError("Rewritten structure has no beat left to activate")
    return AccumulatedStructureState(
        current_act_index=pointer[0],
        current_beat_index=pointer[1],
        beat_progressions=tuple(progressions),
    )


# ──────────────────────────────────────────
# 版本
# ──────────────────────────────────────────


def new_version_id() -> str:
    return f"sv-{uuid.uuid4().hex[:12]}"


def derived_version_id(previous_version_id: str, page_id: int | None) -> str:
    """由上一版本与触发页确定的版本 ID：同样的输入得到同样的 ID。"""
    name = f"{previous_version_id}:{page_id}"
    return f"sv-{uuid.uuid5(_VERSION_NAMESPACE, name).hex[:12]}"


def create_initial_version(
    structure: StoryStructure,
    version_id: str | None = None,
    created_at: datetime | None = None,
) -> StructureVersion:
    return StructureVersion(
        id=version_id or new_version_id(), structure=structure, created_at=created_at
    )


def create_rewritten_version(
    previous: StructureVersion,
    structure: StoryStructure,
    preserved_beat_ids: Sequence[str],
    rewrite_reason: str,
    created_at_page_id: int | None,
    version_id: str | None = None,
    created_at: datetime | None = None,
) -> StructureVersion:
    return StructureVersion(
        id=version_id or derived_version_id(previous.id, created_at_page_id),
        structure=structure,
        previous_version_id=previous.id,
        created_at_page_id=created_at_page_id,
        rewrite_reason=rewrite_reason,
        preserved_beat_ids=tuple(preserved_beat_ids),
        created_at=created_at,
    )
