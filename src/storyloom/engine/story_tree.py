"""内存中的故事树：持有一个 Story 与它的全部页面。

这是整个项目里唯一有状态的对象，放在纯函数核心之外；它只负责
查父页、调用 build_page、登记新页与新结构版本，不做任何 I/O。
"""

from __future__ import annotations

import logging
from datetime import datetime

from storyloom.config.settings import EngineConfig
from storyloom.engine.page_builder import PageBuildResult, build_page
from storyloom.engine.structure_rewriter import create_initial_version
from storyloom.engine.structure_state import create_story_structure
from storyloom.models.delta import AnalystResult, NarrativeDelta
from storyloom.models.page import PageSnapshot
from storyloom.models.story import Story
from storyloom.models.structure import StructureGenerationResult, StructureVersion

logger = logging.getLogger(__name__)


class StoryTree:
    """一个故事的分支页面树。"""

    def __init__(
        self,
        story: Story,
        config: EngineConfig | None = None,
    ) -> None:
        self._story = story
        self._config = config or EngineConfig()
        self._pages: dict[int, PageSnapshot] = {}
        self._results: dict[int, PageBuildResult] = {}

    @classmethod
    def from_structure(
        cls,
        story_id: str,
        structure_result: StructureGenerationResult | None,
        *,
        title: str = "",
        config: EngineConfig | None = None,
        version_id: str | None = None,
    ) -> StoryTree:
        """用生成器产出的结构创建故事（结构可以为空，即无结构故事）。"""
        story = Story(id=story_id, title=title)
        if structure_result is not None:
            version = create_initial_version(
                create_story_structure(structure_result), version_id, created_at=datetime.now()
            )
            story = story.add_structure_version(version)
        return cls(story, config)

    # ── 查询 ──

    @property
    def story(self) -> Story:
        return self._story

    @property
    def pages(self) -> dict[int, PageSnapshot]:
        return dict(self._pages)

    def get_page(self, page_id: int) -> PageSnapshot:
        try:
            return self._pages[page_id]
        except KeyError:
            raise KeyError(f"Page {page_id} not found in story {self._story.id}") from None

    def get_build_result(self, page_id: int) -> PageBuildResult:
        self.get_page(page_id)
        return self._results[page_id]

    def lineage(self, page_id: int) -> list[PageSnapshot]:
        """根 → page_id 的路径（含两端）。"""
        path: list[PageSnapshot] = []
        current: int | None = page_id
        while current is not None:
            page = self.get_page(current)
            path.append(page)
            current = page.parent_id
        path.reverse()
        return path

    def children(self, page_id: int) -> list[PageSnapshot]:
        return sorted(
            (p for p in self._pages.values() if p.parent_id == page_id),
            key=lambda p: p.id,
        )

    def next_page_id(self) -> int:
        return max(self._pages, default=0) + 1

    def structure_version_for(self, page: PageSnapshot | None) -> StructureVersion | None:
        """子页沿用父页生成时的结构版本；根页用最新版本。"""
        if page is None or page.structure_version_id is None:
            return self._story.latest_structure_version()
        version = self._story.get_structure_version(page.structure_version_id)
        if version is None:
            raise KeyError(f"Structure version {page.structure_version_id} not found")
        return version

    # ── 生成 ──

    def generate_page(
        self,
        parent_id: int | None,
        delta: NarrativeDelta,
        analyst: AnalystResult | None = None,
        regenerated_structure: StructureGenerationResult | None = None,
        *,
        page_id: int | None = None,
    ) -> PageBuildResult:
        """在 parent_id 之下生成一页（parent_id 为 None 表示根页）。

        构建失败时树与故事都保持不变。
        """
        parent = self.get_page(parent_id) if parent_id is not None else None
        if page_id is None:
            page_id = self.next_page_id()
        elif page_id in self._pages:
            raise ValueError(f"Page {page_id} already exists")

        result = build_page(
            delta,
            analyst,
            parent,
            page_id=page_id,
            structure_version=self.structure_version_for(parent),
            regenerated_structure=regenerated_structure,
            canon=self._story.canon,
            config=self._config,
        )

        story = self._story
        if result.rewrote_structure and result.structure_version is not None:
            # 构建核心不读时钟，登记时间在入库时写入
            version = result.structure_version.model_copy(update={"created_at": datetime.now()})
            story = story.add_structure_version(version)
        if result.canon is not None:
            story = story.with_canon(result.canon)

        self._story = story
        self._pages[page_id] = result.page
        self._results[page_id] = result
        logger.info("故事 %s: 生成页面 %d (父页 %s)", story.id, page_id, parent_id)
        return result

    def delete(self) -> None:
        """删除故事的全部页面。页面不能单独删除。"""
        logger.info("删除故事 %s 的 %d 个页面", self._story.id, len(self._pages))
        self._pages.clear()
        self._results.clear()
