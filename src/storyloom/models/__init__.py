"""Pydantic 数据模型。"""

from storyloom.models.base import BoundaryModel
from storyloom.models.canon import CanonStore
from storyloom.models.delta import (
    AnalystResult,
    CharacterStateAddition,
    CharacterStateRemoval,
    ConstraintAddition,
    NarrativeDelta,
    TaggedAddition,
    ThreadAddition,
    ThreatAddition,
)
from storyloom.models.keyed_entry import (
    ActiveState,
    ConstraintEntry,
    ConstraintType,
    KeyedEntry,
    TaggedEntry,
    ThreadEntry,
    ThreadType,
    ThreatEntry,
    ThreatType,
    Urgency,
)
from storyloom.models.npc import NpcAgenda, NpcRelationship
from storyloom.models.page import AccumulationDiagnostic, PageSnapshot
from storyloom.models.promise import (
    DetectedPromise,
    PromisePayoffAssessment,
    PromiseScope,
    PromiseType,
    ResolvedPromiseMeta,
    ResolvedThreadMeta,
    ThreadPayoffAssessment,
    TrackedPromise,
)
from storyloom.models.story import Story
from storyloom.models.structure import (
    AccumulatedStructureState,
    BeatProgression,
    CompletedBeat,
    DeviationInfo,
    GeneratedAct,
    GeneratedBeat,
    PlannedBeat,
    StoryAct,
    StoryBeat,
    StoryStructure,
    StructureGenerationResult,
    StructureProgressionResult,
    StructureVersion,
)

__all__ = [
    "AccumulatedStructureState",
    "AccumulationDiagnostic",
    "ActiveState",
    "AnalystResult",
    "BeatProgression",
    "BoundaryModel",
    "CanonStore",
    "CharacterStateAddition",
    "CharacterStateRemoval",
    "CompletedBeat",
    "ConstraintAddition",
    "ConstraintEntry",
    "ConstraintType",
    "DetectedPromise",
    "DeviationInfo",
    "GeneratedAct",
    "GeneratedBeat",
    "KeyedEntry",
    "NarrativeDelta",
    "NpcAgenda",
    "NpcRelationship",
    "PageSnapshot",
    "PlannedBeat",
    "PromisePayoffAssessment",
    "PromiseScope",
    "PromiseType",
    "ResolvedPromiseMeta",
    "ResolvedThreadMeta",
    "Story",
    "StoryAct",
    "StoryBeat",
    "StoryStructure",
    "StructureGenerationResult",
    "StructureProgressionResult",
    "StructureVersion",
    "TaggedAddition",
    "TaggedEntry",
    "ThreadAddition",
    "ThreadEntry",
    "ThreadPayoffAssessment",
    "ThreadType",
    "ThreatAddition",
    "ThreatEntry",
    "ThreatType",
    "TrackedPromise",
    "Urgency",
]
