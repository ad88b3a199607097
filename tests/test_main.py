"""CLI 测试。"""

from pathlib import Path

import pytest
import yaml

from storyloom.main import main, replay_script

PRESET = Path(__file__).resolve().parent.parent / "presets" / "lighthouse.yaml"


def _lighthouse():
    with open(PRESET, encoding="utf-8") as f:
        return yaml.safe_load(f)


def test_replay_lighthouse_preset():
    tree = replay_script(_lighthouse())
    assert sorted(tree.pages) == [1, 2, 3, 4, 5, 6]

    page3 = tree.get_page(3)
    assert page3.open_thread_ids == ("td-2",)
    assert "td-1" in page3.resolved_thread_meta
    assert "pr-1" in page3.resolved_promise_meta
    assert tree.get_build_result(3).act_advanced

    # 兄弟分支 4 不受页面 3 影响
    page4 = tree.get_page(4)
    assert [e.text for e in page4.accumulated_inventory] == ["手电筒", "生锈的钥匙", "生锈的钥匙"]
    assert [d.ref_id for d in tree.get_build_result(4).diagnostics] == ["inv-9"]

    versions = tree.story.structure_versions
    assert [v.id for v in versions][0] == "sv-initial"
    assert len(versions) == 2
    assert tree.get_page(5).structure_version_id == versions[1].id
    assert tree.get_page(6).structure_version_id == versions[1].id
    assert tree.get_page(4).structure_version_id == "sv-initial"

    state = tree.get_page(6).accumulated_structure_state
    assert (state.current_act_index, state.current_beat_index) == (1, 1)
    assert tree.story.canon.global_facts == ("灯塔建于 1887 年",)


def test_cli_replay(capsys):
    main(["replay", str(PRESET), "--page", "3"])
    out = capsys.readouterr().out
    assert "灯塔守夜人" in out
    assert "td-2" in out


def test_cli_replay_missing_page_exits(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["replay", str(PRESET), "--page", "99"])
    assert exc.value.code == 1


def test_cli_replay_bad_script_exits(tmp_path):
    script = tmp_path / "bad.yaml"
    script.write_text(
        "pages:\n  - id: 1\n    delta:\n      inventoryAdded: 火把\n", encoding="utf-8"
    )
    with pytest.raises(SystemExit) as exc:
        main(["replay", str(script)])
    assert exc.value.code == 1


def test_cli_migrate(tmp_path, capsys):
    legacy = tmp_path / "legacy.yaml"
    legacy.write_text(
        yaml.safe_dump(
            {
                "pages": [
                    {"id": 1, "accumulatedInventory": ["剑"]},
                    {"id": 2, "parentPageId": 1, "accumulatedInventory": ["剑", "盾"]},
                ]
            },
            allow_unicode=True,
        ),
        encoding="utf-8",
    )
    main(["migrate", str(legacy)])
    out = capsys.readouterr().out
    assert "inv-2" in out
    assert "已迁移 2 页" in out


def test_cli_without_command_prints_help(capsys):
    main([])
    assert "storyloom" in capsys.readouterr().out
