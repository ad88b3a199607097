"""页面构建：一个增量 + 一个分析结果 + 父页快照 → 子页快照。

纯函数，没有 I/O，也不读取任何全局状态。执行顺序：

1. 用父页计数器播种 ID 分配器，先为所有新增条目分配 ID
2. 物品、伤病、威胁、约束、角色状态、位置
3. 线索：补充回收 → 回收元数据 → 老化
4. 承诺：兑现 → 老化 → 过期
5. NPC 议程与关系
6. 设定账本（若提供）
7. 结构：先推进，再处理偏离重写
8. 组装不可变快照
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from storyloom.config.settings import EngineConfig
from storyloom.engine.deviation import handle_deviation
from storyloom.engine.structure_state import (
    advance_structure_state,
    create_initial_structure_state,
    is_structure_complete,
)
from storyloom.errors import StructureRewriteError
from storyloom.models.canon import CanonStore
from storyloom.models.delta import (
    AnalystResult,
    ConstraintAddition,
    NarrativeDelta,
    ThreatAddition,
)
from storyloom.models.keyed_entry import ActiveState, ConstraintEntry, ThreatEntry
from storyloom.models.page import AccumulationDiagnostic, PageSnapshot
from storyloom.models.structure import (
    AccumulatedStructureState,
    DeviationInfo,
    StructureGenerationResult,
    StructureVersion,
)
from storyloom.state.canon import find_potential_contradictions, merge_canon_facts
from storyloom.state.character_state import (
    allocate_character_states,
    apply_character_state_changes,
)
from storyloom.state.identity import IdentityAllocator, allocate_entries, counters_from_snapshot
from storyloom.state.keyed_state import apply_keyed_changes
from storyloom.state.npc_state import accumulate_npc_agendas, accumulate_npc_relationships
from storyloom.state.promise_lifecycle import accumulate_promises, allocate_promises
from storyloom.state.thread_lifecycle import accumulate_threads, allocate_threads

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageBuildResult:
    """构建结果：新快照 + 供调用方记录或展示的附带信息。"""

    page: PageSnapshot
    diagnostics: tuple[AccumulationDiagnostic, ...] = ()
    structure_version: StructureVersion | None = None
    canon: CanonStore | None = None
    deviation_info: DeviationInfo | None = None
    act_advanced: bool = False
    beat_advanced: bool = False
    is_complete: bool = False
    expired_promise_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def rewrote_structure(self) -> bool:
        return self.deviation_info is not None


def _allocate_threats(
    additions: list[ThreatAddition], allocator: IdentityAllocator
) -> list[ThreatEntry]:
    return [
        ThreatEntry(id=allocator.mint("th"), text=a.text.strip(), threat_type=a.threat_type)
        for a in additions
        if a.text.strip()
    ]


def _allocate_constraints(
    additions: list[ConstraintAddition], allocator: IdentityAllocator
) -> list[ConstraintEntry]:
    return [
        ConstraintEntry(
            id=allocator.mint("cn"), text=a.text.strip(), constraint_type=a.constraint_type
        )
        for a in additions
        if a.text.strip()
    ]


@dataclass(frozen=True)
class _StructureOutcome:
    state: AccumulatedStructureState
    version: StructureVersion | None
    deviation_info: DeviationInfo | None = None
    act_advanced: bool = False
    beat_advanced: bool = False
    is_complete: bool = False


def _run_structure_step(
    parent: PageSnapshot | None,
    analyst: AnalystResult,
    version: StructureVersion | None,
    regenerated: StructureGenerationResult | None,
    page_id: int,
) -> _StructureOutcome:
    if version is None:
        if analyst.beat_concluded or analyst.deviation_detected:
            logger.warning("页面 %d 没有结构版本，忽略分析器的结构判断", page_id)
        parent_state = parent.accumulated_structure_state if parent else AccumulatedStructureState()
        return _StructureOutcome(state=parent_state, version=None)

    structure = version.structure
    if parent is not None and parent.accumulated_structure_state.beat_progressions:
        state = parent.accumulated_structure_state
    else:
        state = create_initial_structure_state(structure)

    act_advanced = beat_advanced = False
    complete = is_structure_complete(structure, state)

    if analyst.beat_concluded:
        if complete:
            logger.warning("页面 %d: 结构已完成，忽略节拍完成信号", page_id)
        else:
            progression = advance_structure_state(structure, state, analyst.beat_resolution)
            state = progression.updated_state
            act_advanced = progression.act_advanced
            beat_advanced = progression.beat_advanced
            complete = progression.is_complete

    if not analyst.deviation_detected:
        return _StructureOutcome(
            state=state,
            version=version,
            act_advanced=act_advanced,
            beat_advanced=beat_advanced,
            is_complete=complete,
        )

    if complete:
        logger.warning("页面 %d: 结构已完成，忽略偏离: %s", page_id, analyst.deviation_reason)
        return _StructureOutcome(
            state=state,
            version=version,
            act_advanced=act_advanced,
            beat_advanced=beat_advanced,
            is_complete=True,
        )
    if regenerated is None:
        raise StructureRewriteError(
            f"Deviation detected on page {page_id} but no regenerated structure was supplied"
        )

    new_version, new_state, info = handle_deviation(
        version, state, analyst, regenerated, page_id
    )
    return _StructureOutcome(
        state=new_state,
        version=new_version,
        deviation_info=info,
        act_advanced=act_advanced,
        beat_advanced=beat_advanced,
        is_complete=False,
    )


def build_page(
    delta: NarrativeDelta,
    analyst_result: AnalystResult | None,
    parent: PageSnapshot | None,
    *,
    page_id: int,
    structure_version: StructureVersion | None = None,
    regenerated_structure: StructureGenerationResult | None = None,
    canon: CanonStore | None = None,
    config: EngineConfig | None = None,
) -> PageBuildResult:
    """构建子页快照。父页为 None 时所有累积从空开始。

    结构类的契约违规（无结语推进、越界、重写节拍不足、偏离却没有重新生成的结构）
    直接抛出，不返回任何部分结果。
    """
    config = config or EngineConfig()
    analyst = analyst_result or AnalystResult()
    parent_state = parent.accumulated_active_state if parent else ActiveState()

    # 1. ID 分配先于任何累积
    allocator = IdentityAllocator(counters_from_snapshot(parent))
    new_inventory = allocate_entries(delta.inventory_added, allocator, "inv")
    new_health = allocate_entries(delta.health_added, allocator, "hp")
    new_threats = _allocate_threats(delta.threats_added, allocator)
    new_constraints = _allocate_constraints(delta.constraints_added, allocator)
    new_threads = allocate_threads(delta.threads_added, allocator, config)
    new_character_states = allocate_character_states(
        delta.character_state_changes_added, allocator
    )
    new_promises = allocate_promises(analyst.promises_detected, allocator)

    # 2. 带 ID 条目
    diagnostics: list[AccumulationDiagnostic] = []
    inventory, diags = apply_keyed_changes(
        parent.accumulated_inventory if parent else (),
        new_inventory,
        delta.inventory_removed,
        "inventory",
    )
    diagnostics.extend(diags)
    health, diags = apply_keyed_changes(
        parent.accumulated_health if parent else (),
        new_health,
        delta.health_removed,
        "health",
    )
    diagnostics.extend(diags)
    threats, diags = apply_keyed_changes(
        parent_state.active_threats, new_threats, delta.threats_removed, "threats"
    )
    diagnostics.extend(diags)
    constraints, diags = apply_keyed_changes(
        parent_state.active_constraints, new_constraints, delta.constraints_removed, "constraints"
    )
    diagnostics.extend(diags)
    character_state, diags = apply_character_state_changes(
        parent.accumulated_character_state if parent else {},
        new_character_states,
        delta.character_state_changes_removed,
    )
    diagnostics.extend(diags)

    location = parent_state.current_location
    if delta.current_location is not None and delta.current_location.strip():
        location = delta.current_location.strip()

    # 3. 线索
    threads = accumulate_threads(
        parent_state.open_threads,
        parent.thread_ages if parent else {},
        new_threads,
        delta.threads_resolved,
        analyst.thread_payoff_assessments,
    )
    diagnostics.extend(threads.diagnostics)

    # 4. 承诺
    promises = accumulate_promises(
        parent.accumulated_promises if parent else (),
        new_promises,
        analyst.promises_resolved,
        config,
        analyst.promise_payoff_assessments,
    )

    # 5. NPC
    agendas = accumulate_npc_agendas(
        parent.accumulated_npc_agendas if parent else {}, delta.npc_agenda_updates
    )
    relationships = accumulate_npc_relationships(
        parent.accumulated_npc_relationships if parent else {},
        delta.npc_relationship_updates,
    )

    # 6. 设定账本
    updated_canon = canon
    if canon is not None:
        if config.warn_on_canon_contradiction:
            for fact in find_potential_contradictions(canon, delta.new_canon_facts):
                logger.warning("页面 %d 的新设定可能与已有设定矛盾: %s", page_id, fact)
        updated_canon = merge_canon_facts(
            canon, delta.new_canon_facts, delta.new_character_canon_facts
        )

    # 7. 结构
    structure = _run_structure_step(
        parent, analyst, structure_version, regenerated_structure, page_id
    )

    # 8. 组装
    page = PageSnapshot(
        id=page_id,
        parent_id=parent.id if parent is not None else None,
        structure_version_id=structure.version.id if structure.version else None,
        accumulated_active_state=ActiveState(
            current_location=location,
            active_threats=threats,
            active_constraints=constraints,
            open_threads=threads.open_threads,
        ),
        accumulated_inventory=inventory,
        accumulated_health=health,
        accumulated_character_state=dict(character_state),
        thread_ages=dict(threads.thread_ages),
        accumulated_promises=promises.promises,
        accumulated_npc_agendas=dict(agendas),
        accumulated_npc_relationships=dict(relationships),
        accumulated_structure_state=structure.state,
        resolved_thread_meta=dict(threads.resolved_meta),
        resolved_promise_meta=dict(promises.resolved_meta),
        id_counters=dict(allocator.counters),
    )
    if diagnostics:
        logger.info("页面 %d 构建完成，%d 条诊断", page_id, len(diagnostics))
    else:
        logger.debug("页面 %d 构建完成", page_id)

    return PageBuildResult(
        page=page,
        diagnostics=tuple(diagnostics),
        structure_version=structure.version,
        canon=updated_canon,
        deviation_info=structure.deviation_info,
        act_advanced=structure.act_advanced,
        beat_advanced=structure.beat_advanced,
        is_complete=structure.is_complete,
        expired_promise_ids=promises.expired_ids,
    )
