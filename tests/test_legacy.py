"""旧格式页面迁移测试。"""

import pytest

from storyloom.models.keyed_entry import ThreatEntry, ThreadType
from storyloom.state.identity import IdentityAllocator
from storyloom.state.legacy import (
    convert_legacy_entries,
    migrate_legacy_chain,
    migrate_legacy_page,
    page_traversal_order,
)


def _page(page_id, parent=None, inventory=(), threats=(), threads=(), characters=None, **extra):
    raw = {
        "id": page_id,
        "parentPageId": parent,
        "accumulatedInventory": list(inventory),
        "accumulatedActiveState": {
            "currentLocation": extra.pop("location", ""),
            "activeThreats": list(threats),
            "activeConstraints": [],
            "openThreads": list(threads),
        },
        "accumulatedCharacterState": characters or {},
    }
    raw.update(extra)
    return raw


def test_plain_strings_get_ids():
    migrated = migrate_legacy_page(_page(1, inventory=["剑", "盾"]))
    assert [(e.id, e.text) for e in migrated.snapshot.accumulated_inventory] == [
        ("inv-1", "剑"),
        ("inv-2", "盾"),
    ]
    assert migrated.snapshot.id_counters["inv"] == 2


def test_unchanged_text_keeps_parent_id():
    """子页文本没变时沿用父页 ID，不会因为迁移而产生新 ID。"""
    parent = migrate_legacy_page(_page(1, inventory=["剑", "盾"]))
    child = migrate_legacy_page(_page(2, 1, inventory=["盾", "剑", "剑"]), parent)
    assert [(e.id, e.text) for e in child.snapshot.accumulated_inventory] == [
        ("inv-2", "盾"),
        ("inv-1", "剑"),
        ("inv-3", "剑"),
    ]


def test_tagged_strings_become_aliases():
    migrated = migrate_legacy_page(
        _page(1, threats=["THREAT_wolves: 狼群", {"prefix": "THREAT_fire", "description": "山火"}])
    )
    threats = migrated.snapshot.accumulated_active_state.active_threats
    assert [(t.id, t.text) for t in threats] == [("th-1", "狼群"), ("th-2", "山火")]
    assert all(isinstance(t, ThreatEntry) for t in threats)
    assert migrated.threat_aliases == {"THREAT_wolves": "th-1", "THREAT_fire": "th-2"}


def test_inherited_alias_dropped_when_entry_gone():
    parent = migrate_legacy_page(_page(1, threats=["THREAT_wolves: 狼群", "THREAT_fire: 山火"]))
    child = migrate_legacy_page(_page(2, 1, threats=["山火"]), parent)
    assert child.threat_aliases == {"THREAT_fire": "th-2"}


def test_already_keyed_entries_are_kept():
    migrated = migrate_legacy_page(
        _page(
            1,
            threads=[
                {"id": "td-7", "text": "谁在说谎", "threadType": "MYSTERY", "urgency": "HIGH"},
                "新的疑问",
            ],
            threadAges={"td-7": 3},
        )
    )
    threads = migrated.snapshot.accumulated_active_state.open_threads
    assert [(t.id, t.text) for t in threads] == [("td-7", "谁在说谎"), ("td-8", "新的疑问")]
    assert threads[0].thread_type is ThreadType.MYSTERY
    assert migrated.snapshot.thread_ages == {"td-7": 3, "td-8": 0}


def test_keyed_entry_with_wrong_prefix_is_reminted():
    allocator = IdentityAllocator()
    converted = convert_legacy_entries([{"id": "hp-3", "text": "剑"}], (), "inv", allocator)
    assert [(e.id, e.text) for e in converted.entries] == [("inv-1", "剑")]


def test_character_state_counts_per_character():
    migrated = migrate_legacy_page(
        _page(1, characters={"艾琳": ["疲惫", "饥饿"], "马库斯": ["警惕"], "空": []})
    )
    state = migrated.snapshot.accumulated_character_state
    assert [e.id for e in state["艾琳"]] == ["cs-1", "cs-2"]
    assert [e.id for e in state["马库斯"]] == ["cs-1"]
    assert "空" not in state


def test_location_carries_from_parent_when_missing():
    parent = migrate_legacy_page(_page(1, location="码头"))
    raw = _page(2, 1)
    del raw["accumulatedActiveState"]["currentLocation"]
    child = migrate_legacy_page(raw, parent)
    assert child.snapshot.accumulated_active_state.current_location == "码头"


def test_non_list_fields_become_empty():
    migrated = migrate_legacy_page({"id": 1, "accumulatedInventory": "剑"})
    assert migrated.snapshot.accumulated_inventory == ()


def test_traversal_order_parents_first():
    pages = {
        5: {"parentPageId": 2},
        3: {"parentPageId": 1},
        2: {"parentPageId": 1},
        1: {},
        9: {"parentPageId": 42},
    }
    assert page_traversal_order(pages) == [1, 9, 2, 3, 5]


def test_traversal_order_appends_cycles():
    pages = {1: {}, 7: {"parentPageId": 8}, 8: {"parentPageId": 7}}
    assert page_traversal_order(pages) == [1, 7, 8]


def test_migrate_chain_branches_are_isolated():
    snapshots = migrate_legacy_chain(
        [
            _page(3, 1, inventory=["剑", "火把"]),
            _page(1, inventory=["剑"]),
            _page(2, 1, inventory=["剑", "盾"]),
        ]
    )
    assert [(e.id, e.text) for e in snapshots[2].accumulated_inventory] == [
        ("inv-1", "剑"),
        ("inv-2", "盾"),
    ]
    assert [(e.id, e.text) for e in snapshots[3].accumulated_inventory] == [
        ("inv-1", "剑"),
        ("inv-2", "火把"),
    ]
    assert snapshots[3].parent_id == 1


def test_migrate_chain_requires_int_ids():
    with pytest.raises(ValueError):
        migrate_legacy_chain([{"id": "one"}])
