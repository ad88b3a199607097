"""故事结构推进状态机。

每个节拍 pending → active → concluded。是否推进由外部分析器判断，
这里只负责收到"本拍已完成"之后的确定性状态转换。
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from storyloom.errors import StructureProgressionError
from storyloom.models.structure import (
    AccumulatedStructureState,
    BeatProgression,
    CompletedBeat,
    PlannedBeat,
    StoryAct,
    StoryBeat,
    StoryStructure,
    StructureGenerationResult,
    StructureProgressionResult,
)

logger = logging.getLogger(__name__)

_BEAT_ID_PATTERN = re.compile(r"^(\d+)\.(\d+)$")


# ──────────────────────────────────────────
# 创建
# ──────────────────────────────────────────


def create_story_structure(result: StructureGenerationResult) -> StoryStructure:
    """为生成器产出的结构分配层级 ID："1"、"1.1"、"1.2"、"2.1" ……"""
    acts: list[StoryAct] = []
    for act_index, act_data in enumerate(result.acts):
        act_id = str(act_index + 1)
        beats = tuple(
            StoryBeat(
                id=f"{act_id}.{beat_index + 1}",
                description=beat.description,
                objective=beat.objective,
            )
            for beat_index, beat in enumerate(act_data.beats)
        )
        acts.append(
            StoryAct(
                id=act_id,
                name=act_data.name,
                objective=act_data.objective,
                stakes=act_data.stakes,
                entry_condition=act_data.entry_condition,
                beats=beats,
            )
        )
    return StoryStructure(overall_theme=result.overall_theme, acts=tuple(acts))


def create_initial_structure_state(structure: StoryStructure) -> AccumulatedStructureState:
    """首页的结构状态：第一幕第一拍 active，其余 pending。"""
    progressions = [
        BeatProgression(
            beat_id=beat.id,
            status="active" if act_index == 0 and beat_index == 0 else "pending",
        )
        for act_index, act in enumerate(structure.acts)
        for beat_index, beat in enumerate(act.beats)
    ]
    return AccumulatedStructureState(
        current_act_index=0,
        current_beat_index=0,
        beat_progressions=tuple(progressions),
    )


# ──────────────────────────────────────────
# 工具
# ──────────────────────────────────────────


def parse_beat_indices(beat_id: str) -> tuple[int, int] | None:
    """'2.3' → (1, 2)（0 起下标）。格式不对返回 None。"""
    match = _BEAT_ID_PATTERN.match(beat_id)
    if match is None:
        return None
    act_number, beat_number = int(match.group(1)), int(match.group(2))
    if act_number < 1 or beat_number < 1:
        return None
    return act_number - 1, beat_number - 1


def get_beat(structure: StoryStructure, act_index: int, beat_index: int) -> StoryBeat:
    if not 0 <= act_index < len(structure.acts):
        raise StructureProgressionError(f"Invalid act index: {act_index}")
    act = structure.acts[act_index]
    if not 0 <= beat_index < len(act.beats):
        raise StructureProgressionError(
            f"Invalid beat index: {beat_index} (act {act.id} has {len(act.beats)} beats)"
        )
    return act.beats[beat_index]


def upsert_beat_progression(
    progressions: Sequence[BeatProgression], progression: BeatProgression
) -> tuple[BeatProgression, ...]:
    """按 beat_id 替换；不存在时追加。"""
    replaced = False
    result: list[BeatProgression] = []
    for existing in progressions:
        if existing.beat_id == progression.beat_id:
            result.append(progression)
            replaced = True
        else:
            result.append(existing)
    if not replaced:
        result.append(progression)
    return tuple(result)


def is_structure_complete(structure: StoryStructure, state: AccumulatedStructureState) -> bool:
    """最后一幕的最后一拍已 concluded。"""
    if not structure.acts or not structure.acts[-1].beats:
        return False
    last_beat_id = structure.acts[-1].beats[-1].id
    return any(
        p.beat_id == last_beat_id and p.status == "concluded" for p in state.beat_progressions
    )


# ──────────────────────────────────────────
# 推进
# ──────────────────────────────────────────


def advance_structure_state(
    structure: StoryStructure,
    current_state: AccumulatedStructureState,
    beat_resolution: str,
) -> StructureProgressionResult:
    """把当前 active 节拍标记为 concluded，并激活下一拍（或宣告完成）。

    结语为空、索引越界、或结构已完成时抛出 StructureProgressionError。
    """
    resolution = beat_resolution.strip()
    if not resolution:
        raise StructureProgressionError(
            "Cannot advance structure without a non-empty beat resolution"
        )
    if is_structure_complete(structure, current_state):
        raise StructureProgressionError("Cannot advance a structure that is already complete")

    act_index = current_state.current_act_index
    beat_index = current_state.current_beat_index
    current_beat = get_beat(structure, act_index, beat_index)

    concluded = upsert_beat_progression(
        current_state.beat_progressions,
        BeatProgression(beat_id=current_beat.id, status="concluded", resolution=resolution),
    )

    is_last_beat_of_act = beat_index == len(structure.acts[act_index].beats) - 1
    is_last_act = act_index == len(structure.acts) - 1

    if is_last_beat_of_act and is_last_act:
        logger.info("节拍 %s 完成，故事结构已全部完成", current_beat.id)
        return StructureProgressionResult(
            updated_state=AccumulatedStructureState(
                current_act_index=act_index,
                current_beat_index=beat_index,
                beat_progressions=concluded,
            ),
            act_advanced=False,
            beat_advanced=False,
            is_complete=True,
        )

    next_act_index = act_index + 1 if is_last_beat_of_act else act_index
    next_beat_index = 0 if is_last_beat_of_act else beat_index + 1
    next_beat = get_beat(structure, next_act_index, next_beat_index)

    activated = upsert_beat_progression(
        concluded, BeatProgression(beat_id=next_beat.id, status="active")
    )
    logger.info("节拍 %s 完成 → 进入 %s", current_beat.id, next_beat.id)
    return StructureProgressionResult(
        updated_state=AccumulatedStructureState(
            current_act_index=next_act_index,
            current_beat_index=next_beat_index,
            beat_progressions=activated,
        ),
        act_advanced=is_last_beat_of_act,
        beat_advanced=True,
        is_complete=False,
    )


def apply_structure_progression(
    structure: StoryStructure,
    parent_state: AccumulatedStructureState,
    beat_concluded: bool,
    beat_resolution: str,
) -> AccumulatedStructureState:
    """父页 → 子页的结构状态继承。未完成节拍时原样返回父页状态。"""
    if not beat_concluded:
        return parent_state
    return advance_structure_state(structure, parent_state, beat_resolution).updated_state


# ──────────────────────────────────────────
# 重写支持
# ──────────────────────────────────────────


def extract_completed_beats(
    structure: StoryStructure, state: AccumulatedStructureState
) -> list[CompletedBeat]:
    """已完成节拍（含结语），按幕/拍顺序排列。"""
    completed: list[CompletedBeat] = []
    for progression in state.beat_progressions:
        if progression.status != "concluded":
            continue
        indices = parse_beat_indices(progression.beat_id)
        if indices is None:
            logger.warning("已完成节拍的 ID 格式不正确: %s", progression.beat_id)
            continue
        act_index, beat_index = indices
        if act_index >= len(structure.acts) or beat_index >= len(structure.acts[act_index].beats):
            logger.warning("结构中找不到节拍 %s", progression.beat_id)
            continue
        beat = structure.acts[act_index].beats[beat_index]
        completed.append(
            CompletedBeat(
                act_index=act_index,
                beat_index=beat_index,
                beat_id=progression.beat_id,
                description=beat.description,
                objective=beat.objective,
                resolution=progression.resolution or "",
            )
        )
    completed.sort(key=lambda b: (b.act_index, b.beat_index))
    return completed


def extract_planned_beats(
    structure: StoryStructure, state: AccumulatedStructureState
) -> list[PlannedBeat]:
    """当前位置之后、尚未完成的原计划节拍（不含当前拍）。"""
    concluded_ids = {p.beat_id for p in state.beat_progressions if p.status == "concluded"}
    position = (state.current_act_index, state.current_beat_index)
    planned: list[PlannedBeat] = []
    for act_index, act in enumerate(structure.acts):
        for beat_index, beat in enumerate(act.beats):
            if beat.id in concluded_ids or (act_index, beat_index) <= position:
                continue
            planned.append(
                PlannedBeat(
                    act_index=act_index,
                    beat_index=beat_index,
                    beat_id=beat.id,
                    description=beat.description,
                    objective=beat.objective,
                )
            )
    return planned


def get_preserved_beat_ids(state: AccumulatedStructureState) -> tuple[str, ...]:
    return tuple(p.beat_id for p in state.beat_progressions if p.status == "concluded")


def validate_preserved_beats(
    original: StoryStructure,
    rewritten: StoryStructure,
    state: AccumulatedStructureState,
) -> bool:
    """所有已完成节拍在新结构中同一位置、内容不变。"""
    for beat_id in get_preserved_beat_ids(state):
        indices = parse_beat_indices(beat_id)
        if indices is None:
            return False
        act_index, beat_index = indices
        try:
            before = original.acts[act_index].beats[beat_index]
            after = rewritten.acts[act_index].beats[beat_index]
        except IndexError:
            return False
        if (before.id, before.description, before.objective) != (
            after.id,
            after.description,
            after.objective,
        ):
            return False
    return True
