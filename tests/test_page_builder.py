"""页面构建端到端测试。"""

import pytest

from storyloom.config.settings import EngineConfig
from storyloom.engine.page_builder import build_page
from storyloom.engine.structure_rewriter import create_initial_version
from storyloom.engine.structure_state import create_story_structure
from storyloom.errors import StructureProgressionError, StructureRewriteError
from storyloom.intake import parse_analyst_result, parse_delta, parse_structure_result
from storyloom.models.canon import CanonStore
from storyloom.models.delta import AnalystResult, NarrativeDelta
from storyloom.models.keyed_entry import ActiveState, ThreadEntry
from storyloom.models.page import PageSnapshot
from storyloom.models.promise import PromiseScope


def _build(delta=None, analyst=None, parent=None, page_id=None, **kwargs):
    if page_id is None:
        page_id = parent.id + 1 if parent is not None else 1
    return build_page(
        parse_delta(delta or {}),
        parse_analyst_result(analyst),
        parent,
        page_id=page_id,
        **kwargs,
    )


# ──────── 端到端场景 ────────


def test_first_inventory_item_gets_inv_1():
    result = _build({"inventoryAdded": ["Torch"]})
    page = result.page
    assert [(e.id, e.text) for e in page.accumulated_inventory] == [("inv-1", "Torch")]
    assert page.parent_id is None
    assert page.id_counters["inv"] == 1


def test_analyst_assessment_resolves_open_thread():
    parent = PageSnapshot(
        id=1,
        accumulated_active_state=ActiveState(
            open_threads=(ThreadEntry(id="td-1", text="Find the key"),)
        ),
        thread_ages={"td-1": 2},
    )
    result = _build(
        {"threadsResolved": []},
        {
            "threadPayoffAssessments": [
                {"threadId": "td-1", "satisfactionLevel": "WELL_EARNED", "reasoning": "ok"}
            ]
        },
        parent,
    )
    page = result.page
    assert page.open_thread_ids == ()
    assert "td-1" in page.resolved_thread_meta
    assert "td-1" not in page.thread_ages


def test_scene_promise_expires_after_threshold():
    page = _build(
        analyst={"promisesDetected": [{"description": "The locked door", "scope": "SCENE"}]}
    ).page
    assert [(p.id, p.age) for p in page.accumulated_promises] == [("pr-1", 0)]

    for expected_age in (1, 2, 3, 4):
        page = _build(parent=page).page
        assert [(p.id, p.age) for p in page.accumulated_promises] == [("pr-1", expected_age)]

    result = _build(parent=page)
    assert result.page.id == 6
    assert result.page.accumulated_promises == ()
    assert result.page.resolved_promise_meta == {}
    assert result.expired_promise_ids == ("pr-1",)


def test_advance_last_beat_of_act_moves_to_next_act():
    structure = create_story_structure(
        parse_structure_result(
            {
                "acts": [
                    {"beats": [{"description": "Escape the cell"}]},
                    {"beats": [{"description": "Cross the river"}]},
                ]
            }
        )
    )
    version = create_initial_version(structure, "sv-1")
    result = _build(
        analyst={"beatConcluded": True, "beatResolution": "done"},
        structure_version=version,
    )
    state = result.page.accumulated_structure_state
    assert (state.current_act_index, state.current_beat_index) == (1, 0)
    progressions = {p.beat_id: p for p in state.beat_progressions}
    assert progressions["1.1"].status == "concluded"
    assert progressions["1.1"].resolution == "done"
    assert progressions["2.1"].status == "active"
    assert result.act_advanced
    assert result.page.structure_version_id == "sv-1"


# ──────── 累积细节 ────────


def test_full_delta_accumulates_every_category():
    result = _build(
        {
            "currentLocation": "  废弃码头 ",
            "threatsAdded": ["THREAT_guards: 巡逻的卫兵", {"text": "涨潮", "threatType": "ENVIRONMENTAL"}],
            "constraintsAdded": [{"text": "天黑前必须离开", "constraintType": "TEMPORAL"}],
            "threadsAdded": [{"text": "船长去了哪里", "threadType": "MYSTERY", "urgency": "HIGH"}],
            "inventoryAdded": ["短刀", "  "],
            "healthAdded": ["左臂擦伤"],
            "characterStateChangesAdded": [{"characterName": "船长", "states": ["失踪"]}],
            "npcAgendaUpdates": [{"npcName": "走私贩", "currentGoal": "卖掉货物"}],
            "npcRelationshipUpdates": [{"npcName": "走私贩", "valence": -2, "dynamic": "对手"}],
        }
    )
    page = result.page
    active = page.accumulated_active_state
    assert active.current_location == "废弃码头"
    assert [(t.id, t.text) for t in active.active_threats] == [("th-1", "巡逻的卫兵"), ("th-2", "涨潮")]
    assert active.active_threats[1].threat_type.value == "ENVIRONMENTAL"
    assert [c.id for c in active.active_constraints] == ["cn-1"]
    assert [(t.id, t.urgency.value) for t in active.open_threads] == [("td-1", "HIGH")]
    assert page.thread_ages == {"td-1": 0}
    assert [e.id for e in page.accumulated_inventory] == ["inv-1"]
    assert [e.id for e in page.accumulated_health] == ["hp-1"]
    assert [e.id for e in page.accumulated_character_state["船长"]] == ["cs-1"]
    assert page.accumulated_npc_agendas["走私贩"].current_goal == "卖掉货物"
    assert page.accumulated_npc_relationships["走私贩"].valence == -2
    assert result.diagnostics == ()


def test_blank_location_carries_forward():
    parent = _build({"currentLocation": "灯塔"}).page
    assert _build({"currentLocation": "   "}, parent=parent).page.accumulated_active_state.current_location == "灯塔"
    assert _build({}, parent=parent).page.accumulated_active_state.current_location == "灯塔"


def test_unknown_removals_collected_as_diagnostics():
    parent = _build({"inventoryAdded": ["绳子"]}).page
    result = _build(
        {
            "inventoryRemoved": ["inv-1", "inv-5"],
            "threatsRemoved": ["th-3"],
            "characterStateChangesRemoved": [{"characterName": "艾琳", "ids": ["cs-1"]}],
        },
        parent=parent,
    )
    assert result.page.accumulated_inventory == ()
    assert [(d.category, d.ref_id, d.subject) for d in result.diagnostics] == [
        ("inventory", "inv-5", None),
        ("threats", "th-3", None),
        ("character_state", "cs-1", "艾琳"),
    ]


def test_removed_ids_are_never_reused():
    page1 = _build({"inventoryAdded": ["火把"]}).page
    page2 = _build({"inventoryRemoved": ["inv-1"]}, parent=page1).page
    assert page2.accumulated_inventory == ()
    page3 = _build({"inventoryAdded": ["新火把"]}, parent=page2).page
    assert [e.id for e in page3.accumulated_inventory] == ["inv-2"]


def test_sibling_branches_are_isolated():
    root = _build({"inventoryAdded": ["地图"]}).page
    left = _build({"inventoryAdded": ["剑"]}, parent=root, page_id=2).page
    right = _build({"inventoryAdded": ["盾"], "inventoryRemoved": ["inv-1"]}, parent=root, page_id=3).page

    assert [(e.id, e.text) for e in left.accumulated_inventory] == [("inv-1", "地图"), ("inv-2", "剑")]
    assert [(e.id, e.text) for e in right.accumulated_inventory] == [("inv-2", "盾")]
    assert [e.id for e in root.accumulated_inventory] == ["inv-1"]


def test_build_is_deterministic():
    parent = _build({"inventoryAdded": ["地图"], "threadsAdded": ["去哪里"]}).page
    delta = {"inventoryAdded": ["剑"], "threadsResolved": ["td-1"], "healthAdded": ["擦伤"]}
    first = _build(delta, parent=parent)
    second = _build(delta, parent=parent)
    assert first.page == second.page
    assert first.diagnostics == second.diagnostics


def test_parent_snapshot_is_unchanged():
    parent = _build({"inventoryAdded": ["地图"], "threadsAdded": ["去哪里"]}).page
    before = parent.model_dump()
    _build({"inventoryRemoved": ["inv-1"], "threadsResolved": ["td-1"]}, parent=parent)
    assert parent.model_dump() == before


def test_thread_ages_increment():
    page = _build({"threadsAdded": ["A"]}).page
    page = _build({"threadsAdded": ["B"]}, parent=page).page
    page = _build({}, parent=page).page
    assert page.thread_ages == {"td-1": 2, "td-2": 1}


def test_custom_expiry_config():
    config = EngineConfig(promise_scope_expiry={"SCENE": 0, "ACT": 1, "STORY": 2})
    page = _build(
        analyst={"promisesDetected": [{"description": "伏笔", "scope": "SCENE"}]}, config=config
    ).page
    result = _build(parent=page, config=config)
    assert result.expired_promise_ids == ("pr-1",)
    assert config.expiry_threshold(PromiseScope.SCENE) == 0


# ──────── 设定账本 ────────


def test_canon_is_merged_and_returned():
    canon = CanonStore(global_facts=("The bridge stands",))
    result = _build(
        {
            "newCanonFacts": ["The bridge stands", "The river is cold"],
            "newCharacterCanonFacts": [{"characterName": "Elena", "facts": ["Is a smuggler"]}],
        },
        canon=canon,
    )
    assert result.canon.global_facts == ("The bridge stands", "The river is cold")
    assert result.canon.character_facts == {"Elena": ("Is a smuggler",)}
    assert canon.global_facts == ("The bridge stands",)


def test_canon_untouched_without_store():
    result = _build({"newCanonFacts": ["x"]})
    assert result.canon is None


def test_canon_contradiction_only_warns(caplog):
    canon = CanonStore(global_facts=("The bridge stands strong",))
    with caplog.at_level("WARNING"):
        result = _build({"newCanonFacts": ["The bridge was destroyed"]}, canon=canon)
    assert "The bridge was destroyed" in result.canon.global_facts
    assert any("矛盾" in r.getMessage() for r in caplog.records)


# ──────── 结构 ────────


def test_root_page_initializes_structure(structure_version):
    result = _build(structure_version=structure_version)
    state = result.page.accumulated_structure_state
    assert [p.status for p in state.beat_progressions][:2] == ["active", "pending"]
    assert not result.beat_advanced


def test_beat_concluded_without_resolution_aborts(structure_version):
    with pytest.raises(StructureProgressionError):
        _build(analyst={"beatConcluded": True}, structure_version=structure_version)


def test_structure_signals_ignored_without_version(caplog):
    with caplog.at_level("WARNING"):
        result = _build(analyst={"beatConcluded": True, "beatResolution": "x"})
    assert result.page.accumulated_structure_state.beat_progressions == ()
    assert result.page.structure_version_id is None


def test_deviation_without_regenerated_structure_raises(structure_version):
    with pytest.raises(StructureRewriteError):
        _build(
            analyst={"deviationDetected": True, "deviationReason": "走了另一条路"},
            structure_version=structure_version,
        )


def test_deviation_produces_new_version(structure_version):
    root = _build(
        analyst={"beatConcluded": True, "beatResolution": "进了城"},
        structure_version=structure_version,
    ).page
    regenerated = parse_structure_result(
        {
            "acts": [
                {"beats": [{"description": "线人死了", "objective": "找新线人"}]},
                {"beats": [{"description": "夜闯档案馆"}]},
                {"beats": [{"description": "公开名单"}]},
            ]
        }
    )
    result = _build(
        analyst={"deviationDetected": True, "deviationReason": "线人被杀", "invalidatedBeatIds": ["1.2"]},
        parent=root,
        structure_version=structure_version,
        regenerated_structure=regenerated,
    )
    assert result.rewrote_structure
    version = result.structure_version
    assert version.previous_version_id == "sv-test"
    assert result.page.structure_version_id == version.id
    assert version.structure.acts[0].beats[0] == structure_version.structure.acts[0].beats[0]
    assert version.structure.acts[0].beats[1].description == "线人死了"
    state = result.page.accumulated_structure_state
    assert (state.current_act_index, state.current_beat_index) == (0, 1)
    assert result.deviation_info.beats_invalidated == 1


def test_signals_on_complete_structure_are_ignored():
    structure = create_story_structure(
        parse_structure_result({"acts": [{"beats": [{"description": "唯一一拍"}]}]})
    )
    version = create_initial_version(structure, "sv-one")
    done = _build(
        analyst={"beatConcluded": True, "beatResolution": "结束"}, structure_version=version
    )
    assert done.is_complete

    again = _build(
        analyst={"beatConcluded": True, "beatResolution": "又结束", "deviationDetected": True},
        parent=done.page,
        structure_version=version,
    )
    assert again.is_complete
    assert again.deviation_info is None
    assert again.page.accumulated_structure_state == done.page.accumulated_structure_state


def test_empty_delta_keeps_state():
    parent = _build({"inventoryAdded": ["a"], "currentLocation": "b"}).page
    child = _build(NarrativeDelta().model_dump(), AnalystResult().model_dump(), parent).page
    assert child.accumulated_inventory == parent.accumulated_inventory
    assert child.accumulated_active_state == parent.accumulated_active_state
    assert child.parent_id == parent.id


def test_snapshot_maps_are_read_only():
    """快照里的映射不能原地修改，被移除的 ID 也就不会被重新分配。"""
    root = _build({"inventoryAdded": ["Torch"], "threadsAdded": ["谁点的火"]}).page
    child = _build({"inventoryRemoved": ["inv-1"]}, parent=root).page

    with pytest.raises((TypeError, AttributeError)):
        child.id_counters.clear()
    with pytest.raises(TypeError):
        child.id_counters["inv"] = 0
    with pytest.raises(TypeError):
        child.thread_ages["td-1"] = 0
    with pytest.raises(TypeError):
        child.accumulated_character_state["艾琳"] = ()

    grandchild = _build({"inventoryAdded": ["Lamp"]}, parent=child).page
    assert [(e.id, e.text) for e in grandchild.accumulated_inventory] == [("inv-2", "Lamp")]

    dumped = child.model_dump()
    assert type(dumped["id_counters"]) is dict
    assert dumped["id_counters"]["inv"] == 1


def test_default_maps_are_read_only():
    page = PageSnapshot(id=1)
    with pytest.raises(TypeError):
        page.id_counters["inv"] = 5
    assert page.id_counters == {}


def test_same_deviation_builds_equal_versions(structure_version):
    """同样的偏离构建两次得到相同的结构版本，时间戳留给故事树写入。"""
    root = _build(
        analyst={"beatConcluded": True, "beatResolution": "进了城"},
        structure_version=structure_version,
    ).page
    regenerated = parse_structure_result(
        {
            "acts": [
                {"beats": [{"description": "线人死了"}]},
                {"beats": [{"description": "夜闯档案馆"}]},
                {"beats": [{"description": "公开名单"}]},
            ]
        }
    )
    kwargs = {
        "analyst": {"deviationDetected": True, "deviationReason": "线人被杀"},
        "parent": root,
        "structure_version": structure_version,
        "regenerated_structure": regenerated,
    }
    first = _build(**kwargs)
    second = _build(**kwargs)
    assert first.structure_version == second.structure_version
    assert first.structure_version.created_at is None
    assert first.page == second.page
