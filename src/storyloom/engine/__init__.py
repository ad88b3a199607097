"""结构推进状态机、结构重写与页面构建。"""

from storyloom.engine.deviation import handle_deviation
from storyloom.engine.page_builder import PageBuildResult, build_page
from storyloom.engine.story_tree import StoryTree
from storyloom.engine.structure_rewriter import (
    create_initial_version,
    create_rewritten_version,
    rebuild_structure_state_after_rewrite,
    rewrite_structure,
)
from storyloom.engine.structure_state import (
    advance_structure_state,
    apply_structure_progression,
    create_initial_structure_state,
    create_story_structure,
    extract_completed_beats,
    extract_planned_beats,
    get_preserved_beat_ids,
    is_structure_complete,
    parse_beat_indices,
    validate_preserved_beats,
)

__all__ = [
    "PageBuildResult",
    "StoryTree",
    "advance_structure_state",
    "apply_structure_progression",
    "build_page",
    "create_initial_structure_state",
    "create_initial_version",
    "create_rewritten_version",
    "create_story_structure",
    "extract_completed_beats",
    "extract_planned_beats",
    "get_preserved_beat_ids",
    "handle_deviation",
    "is_structure_complete",
    "parse_beat_indices",
    "rebuild_structure_state_after_rewrite",
    "rewrite_structure",
    "validate_preserved_beats",
]
