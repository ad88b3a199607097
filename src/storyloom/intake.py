"""边界解析：把外部协作者的原始输出（dict 或 JSON 文本）转换为强类型模型。

唯一的校验层。核心累积逻辑只接触这里产出的模型。
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from storyloom.errors import DeltaParseError
from storyloom.models.delta import AnalystResult, NarrativeDelta
from storyloom.models.structure import StructureGenerationResult

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


_FENCE_PATTERN = re.compile(r"```[\w-]*[ \t]*\n?(.*?)```", re.DOTALL)


def _json_candidates(text: str) -> list[str]:
    """按优先级排列的候选片段：代码块内容、整段文本、最外层花括号。"""
    candidates = [m.group(1).strip() for m in _FENCE_PATTERN.finditer(text)]
    candidates.append(text.strip())
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        candidates.append(text[first : last + 1])
    return candidates


def extract_json(text: str) -> Any:
    """从生成器输出中取出第一段可解析的 JSON。

    代码块可以带任意语言标记；代码块没闭合时退回到花括号定位。
    全部候选都失败时抛出最后一次的 JSONDecodeError。
    """
    error: json.JSONDecodeError | None = None
    for candidate in _json_candidates(text):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as exc:
            error = exc
    assert error is not None
    raise error


def _validate(model: type[ModelT], raw: Any, label: str) -> ModelT:
    if isinstance(raw, model):
        return raw
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        try:
            raw = extract_json(text)
        except json.JSONDecodeError as e:
            raise DeltaParseError(f"{label}: invalid JSON ({e.msg})") from e
    if not isinstance(raw, dict):
        raise DeltaParseError(f"{label} must be a JSON object, got {type(raw).__name__}")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.warning("%s 校验失败: %d 个错误", label, e.error_count())
        raise DeltaParseError(f"{label} failed validation: {e}") from e


def parse_delta(raw: Any) -> NarrativeDelta:
    """解析生成器输出的叙事增量。"""
    return _validate(NarrativeDelta, raw, "narrative delta")


def parse_analyst_result(raw: Any) -> AnalystResult:
    """解析分析器结论。None 视为"无结论"。"""
    if raw is None:
        return AnalystResult()
    return _validate(AnalystResult, raw, "analyst result")


def parse_structure_result(raw: Any) -> StructureGenerationResult:
    """解析结构生成器输出，并保留原始文本。"""
    result = _validate(StructureGenerationResult, raw, "structure result")
    if isinstance(raw, str) and not result.raw_response:
        result = result.model_copy(update={"raw_response": raw})
    return result
