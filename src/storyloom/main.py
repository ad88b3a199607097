"""storyloom CLI 入口：回放故事脚本、迁移旧格式页面。"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from storyloom.config.settings import EngineConfig, load_config
from storyloom.engine.page_builder import PageBuildResult
from storyloom.engine.story_tree import StoryTree
from storyloom.errors import StoryloomError
from storyloom.intake import parse_analyst_result, parse_delta, parse_structure_result
from storyloom.models.page import PageSnapshot
from storyloom.state.legacy import migrate_legacy_chain

console = Console()
logger = logging.getLogger("storyloom")


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} 顶层必须是映射")
    return data


# ──────────────────────────────────────────
# replay
# ──────────────────────────────────────────


def replay_script(data: dict[str, Any], config: EngineConfig | None = None) -> StoryTree:
    """按脚本顺序逐页构建整棵故事树。

    脚本结构::

        story: {id, title}
        structure: {overallTheme, acts: [...]}   # 可省略
        pages:
          - id: 1
            parent: null
            delta: {...}
            analyst: {...}                        # 可省略
            regeneratedStructure: {...}           # 偏离时必填
    """
    story_meta = data.get("story") or {}
    structure_raw = data.get("structure")
    tree = StoryTree.from_structure(
        str(story_meta.get("id", "story")),
        parse_structure_result(structure_raw) if structure_raw is not None else None,
        title=str(story_meta.get("title", "")),
        config=config,
        version_id=story_meta.get("structureVersionId"),
    )

    for index, page in enumerate(data.get("pages") or [], start=1):
        if not isinstance(page, dict):
            raise ValueError(f"第 {index} 个页面条目不是映射")
        regenerated_raw = page.get("regeneratedStructure", page.get("regenerated_structure"))
        tree.generate_page(
            page.get("parent"),
            parse_delta(page.get("delta") or {}),
            parse_analyst_result(page.get("analyst")),
            parse_structure_result(regenerated_raw) if regenerated_raw is not None else None,
            page_id=page.get("id"),
        )
    return tree


def _print_pages(tree: StoryTree) -> None:
    table = Table(title=f"故事: {tree.story.title or tree.story.id}", show_lines=True)
    table.add_column("页面", style="cyan", justify="right")
    table.add_column("父页", justify="right")
    table.add_column("位置", style="white")
    table.add_column("当前节拍", style="yellow")
    table.add_column("结构版本", style="magenta")
    table.add_column("事件", style="green")

    for page_id, page in sorted(tree.pages.items()):
        result = tree.get_build_result(page_id)
        table.add_row(
            str(page_id),
            str(page.parent_id) if page.parent_id is not None else "-",
            page.accumulated_active_state.current_location or "-",
            _current_beat_label(page),
            page.structure_version_id or "-",
            _events_label(result),
        )
    console.print(table)


def _current_beat_label(page: PageSnapshot) -> str:
    state = page.accumulated_structure_state
    active = [p.beat_id for p in state.beat_progressions if p.status == "active"]
    if active:
        return active[0]
    if state.beat_progressions:
        return "完成"
    return "-"


def _events_label(result: PageBuildResult) -> str:
    events: list[str] = []
    if result.act_advanced:
        events.append("进入新幕")
    elif result.beat_advanced:
        events.append("推进节拍")
    if result.is_complete:
        events.append("结构完成")
    if result.deviation_info is not None:
        events.append(f"重写({result.deviation_info.beats_invalidated} 拍失效)")
    if result.page.resolved_thread_meta:
        events.append("回收线索 " + ", ".join(result.page.resolved_thread_meta))
    if result.page.resolved_promise_meta:
        events.append("兑现承诺 " + ", ".join(result.page.resolved_promise_meta))
    if result.expired_promise_ids:
        events.append("承诺过期 " + ", ".join(result.expired_promise_ids))
    return "\n".join(events) or "-"


def _print_page_state(page: PageSnapshot) -> None:
    table = Table(title=f"页面 {page.id} 的累积状态", show_lines=True)
    table.add_column("类别", style="cyan", width=12)
    table.add_column("条目", style="white")

    active = page.accumulated_active_state
    table.add_row("位置", active.current_location or "-")
    table.add_row("物品", _entries(page.accumulated_inventory))
    table.add_row("伤病", _entries(page.accumulated_health))
    table.add_row("威胁", _entries(active.active_threats))
    table.add_row("约束", _entries(active.active_constraints))
    table.add_row(
        "开放线索",
        "\n".join(
            f"{t.id} [{t.thread_type.value}/{t.urgency.value}] {t.text} "
            f"(age {page.thread_ages.get(t.id, 0)})"
            for t in active.open_threads
        )
        or "-",
    )
    table.add_row(
        "承诺",
        "\n".join(
            f"{p.id} [{p.scope.value}] {p.description} (age {p.age})"
            for p in page.accumulated_promises
        )
        or "-",
    )
    table.add_row(
        "角色状态",
        "\n".join(
            f"{name}: " + "; ".join(f"{e.id} {e.text}" for e in entries)
            for name, entries in page.accumulated_character_state.items()
        )
        or "-",
    )
    table.add_row(
        "NPC",
        "\n".join(
            f"{name}: {agenda.current_goal}"
            for name, agenda in page.accumulated_npc_agendas.items()
        )
        or "-",
    )
    console.print(table)


def _entries(entries) -> str:
    return "\n".join(f"{e.id} {e.text}" for e in entries) or "-"


def _print_diagnostics(tree: StoryTree) -> None:
    rows = [
        (page_id, d)
        for page_id in sorted(tree.pages)
        for d in tree.get_build_result(page_id).diagnostics
    ]
    if not rows:
        return
    table = Table(title="诊断", show_lines=False)
    table.add_column("页面", style="cyan", justify="right")
    table.add_column("类别")
    table.add_column("ID", style="red")
    table.add_column("角色")
    for page_id, d in rows:
        table.add_row(str(page_id), d.category, d.ref_id, d.subject or "-")
    console.print(table)


def cmd_replay(args: argparse.Namespace) -> None:
    """回放故事脚本。"""
    script_path = Path(args.script)
    try:
        config = load_config(args.config)
        data = _load_yaml(script_path)
        console.print(Panel(f"正在回放脚本: [bold]{script_path}[/bold]", title="storyloom"))
        tree = replay_script(data, config)
    except (OSError, ValueError, StoryloomError) as e:
        console.print(f"[red]回放失败: {escape(str(e))}[/red]")
        sys.exit(1)

    if not tree.pages:
        console.print("[yellow]脚本中没有页面[/yellow]")
        return

    _print_pages(tree)
    selected = args.page if args.page is not None else max(tree.pages)
    try:
        page = tree.get_page(selected)
    except KeyError as e:
        console.print(f"[red]{escape(str(e.args[0]))}[/red]")
        sys.exit(1)
    _print_page_state(page)
    _print_diagnostics(tree)
    console.print(
        f"\n[green]共 {len(tree.pages)} 页，"
        f"{len(tree.story.structure_versions)} 个结构版本[/green]"
    )


# ──────────────────────────────────────────
# migrate
# ──────────────────────────────────────────


def cmd_migrate(args: argparse.Namespace) -> None:
    """把旧格式页面链迁移为带 ID 的快照。"""
    legacy_path = Path(args.legacy)
    try:
        data = _load_yaml(legacy_path)
        raw_pages = data.get("pages") or []
        if not isinstance(raw_pages, list):
            raise ValueError("pages 必须是列表")
        snapshots = migrate_legacy_chain(raw_pages)
    except (OSError, ValueError, StoryloomError) as e:
        console.print(f"[red]迁移失败: {escape(str(e))}[/red]")
        sys.exit(1)

    for page_id in sorted(snapshots):
        _print_page_state(snapshots[page_id])
    console.print(f"\n[green]已迁移 {len(snapshots)} 页[/green]")


def main(argv: list[str] | None = None) -> None:
    """CLI 主入口。"""
    from dotenv import load_dotenv
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="storyloom",
        description="storyloom - 分支互动叙事的状态累积与结构推进引擎",
    )
    subparsers = parser.add_subparsers(dest="command")

    replay_parser = subparsers.add_parser("replay", help="回放故事脚本并打印累积状态")
    replay_parser.add_argument("script", help="故事脚本路径（YAML）")
    replay_parser.add_argument(
        "--config", default=None, help="引擎配置文件（YAML），默认读取 STORYLOOM_CONFIG"
    )
    replay_parser.add_argument("--page", type=int, default=None, help="要展示的页面 ID（默认最后一页）")
    replay_parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")

    migrate_parser = subparsers.add_parser("migrate", help="迁移旧格式页面链")
    migrate_parser.add_argument("legacy", help="旧格式页面文件（YAML/JSON，顶层 pages 列表）")
    migrate_parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")

    args = parser.parse_args(argv)

    # 配置日志
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
    )

    if args.command == "replay":
        cmd_replay(args)
    elif args.command == "migrate":
        cmd_migrate(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
