"""偏离处理：分析器报告偏离后，重写结构并产出新版本。"""

from __future__ import annotations

import logging

from storyloom.engine.structure_rewriter import (
    create_rewritten_version,
    rebuild_structure_state_after_rewrite,
    rewrite_structure,
)
from storyloom.models.delta import AnalystResult
from storyloom.models.structure import (
    AccumulatedStructureState,
    DeviationInfo,
    StructureGenerationResult,
    StructureVersion,
)

logger = logging.getLogger(__name__)


def handle_deviation(
    version: StructureVersion,
    state: AccumulatedStructureState,
    analyst: AnalystResult,
    regenerated: StructureGenerationResult,
    page_id: int | None,
    version_id: str | None = None,
) -> tuple[StructureVersion, AccumulatedStructureState, DeviationInfo]:
    """返回 (新结构版本, 重建后的推进状态, 偏离记录)。"""
    reason = analyst.deviation_reason.strip()
    logger.warning("检测到结构偏离 (page=%s): %s", page_id, reason or "<未说明>")

    rewrite = rewrite_structure(
        version.structure, state, analyst.invalidated_beat_ids, regenerated
    )
    new_version = create_rewritten_version(
        version,
        rewrite.structure,
        rewrite.preserved_beat_ids,
        reason,
        page_id,
        version_id=version_id,
    )
    new_state = rebuild_structure_state_after_rewrite(
        rewrite.structure, state, rewrite.preserved_beat_ids
    )
    info = DeviationInfo(
        detected=True,
        reason=reason,
        beats_invalidated=len(analyst.invalidated_beat_ids),
    )
    logger.info("结构版本 %s → %s", version.id, new_version.id)
    return new_version, new_state, info
