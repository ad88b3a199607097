"""故事：拥有结构版本链与设定账本。"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from storyloom.models.canon import CanonStore
from storyloom.models.structure import StructureVersion


class Story(BaseModel):
    """一个故事。结构版本按创建顺序排列，版本 0 没有 previous_version_id。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="故事 ID")
    title: str = Field(default="", description="标题")
    structure_versions: tuple[StructureVersion, ...] = Field(default=(), description="结构版本链")
    canon: CanonStore = Field(default_factory=CanonStore, description="设定账本")

    def add_structure_version(self, version: StructureVersion) -> Story:
        """追加一个结构版本，返回新的 Story。"""
        if any(v.id == version.id for v in self.structure_versions):
            raise ValueError(f"Duplicate structure version id: {version.id}")
        if self.structure_versions and version.previous_version_id is None:
            raise ValueError("Only the first structure version may omit previous_version_id")
        return self.model_copy(
            update={"structure_versions": (*self.structure_versions, version)}
        )

    def latest_structure_version(self) -> StructureVersion | None:
        if not self.structure_versions:
            return None
        return self.structure_versions[-1]

    def get_structure_version(self, version_id: str) -> StructureVersion | None:
        for version in self.structure_versions:
            if version.id == version_id:
                return version
        return None

    def with_canon(self, canon: CanonStore) -> Story:
        if canon is self.canon:
            return self
        return self.model_copy(update={"canon": canon})
