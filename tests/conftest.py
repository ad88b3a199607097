"""测试共用的构造工具。"""

from __future__ import annotations

import pytest

from storyloom.engine.structure_rewriter import create_initial_version
from storyloom.engine.structure_state import create_story_structure
from storyloom.intake import parse_structure_result
from storyloom.models.structure import (
    StoryStructure,
    StructureGenerationResult,
    StructureVersion,
)

THREE_ACT_RAW = {
    "overallTheme": "信任的代价",
    "acts": [
        {
            "name": "开端",
            "objective": "进入城市",
            "beats": [
                {"description": "抵达城门", "objective": "进城"},
                {"description": "遇见线人", "objective": "获取消息"},
            ],
        },
        {
            "name": "对抗",
            "objective": "找到叛徒",
            "beats": [
                {"description": "潜入档案馆", "objective": "偷出名单"},
                {"description": "被追捕", "objective": "逃脱"},
            ],
        },
        {
            "name": "结局",
            "objective": "揭穿叛徒",
            "beats": [{"description": "当众对质", "objective": "揭露真相"}],
        },
    ],
}


@pytest.fixture
def structure() -> StoryStructure:
    return create_story_structure(parse_structure_result(THREE_ACT_RAW))


@pytest.fixture
def structure_version(structure: StoryStructure) -> StructureVersion:
    return create_initial_version(structure, "sv-test")


@pytest.fixture
def structure_result() -> StructureGenerationResult:
    return parse_structure_result(THREE_ACT_RAW)
