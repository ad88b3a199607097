"""叙事承诺的生命周期：发现、兑现、老化、过期。

过期不是兑现：过期的承诺静默丢弃，不写入 resolved_promise_meta。
同一步里既被兑现又超过阈值的承诺按兑现处理。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from storyloom.config.settings import EngineConfig
from storyloom.models.promise import (
    DetectedPromise,
    PromisePayoffAssessment,
    ResolvedPromiseMeta,
    TrackedPromise,
)
from storyloom.state.identity import IdentityAllocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromiseLifecycleResult:
    promises: tuple[TrackedPromise, ...]
    resolved_meta: dict[str, ResolvedPromiseMeta]
    expired_ids: tuple[str, ...]


def allocate_promises(
    detected: Sequence[DetectedPromise],
    allocator: IdentityAllocator,
) -> list[TrackedPromise]:
    """为新发现的承诺分配 pr-<n>，age 从 0 开始。空描述跳过。"""
    promises: list[TrackedPromise] = []
    for promise in detected:
        description = promise.description.strip()
        if not description:
            continue
        promises.append(
            TrackedPromise(
                id=allocator.mint("pr"),
                description=description,
                promise_type=promise.promise_type,
                scope=promise.scope,
                resolution_hint=promise.resolution_hint,
                suggested_urgency=promise.suggested_urgency,
                age=0,
            )
        )
    return promises


def augment_promises_resolved(
    parent_promises: Sequence[TrackedPromise],
    promises_resolved: Sequence[str],
    assessments: Sequence[PromisePayoffAssessment],
) -> list[str]:
    """显式兑现列表优先；兑现评估只补充父页中存在且未被提到的承诺。"""
    resolved = list(dict.fromkeys(pid.strip() for pid in promises_resolved if pid.strip()))
    known = {p.id for p in parent_promises}
    for assessment in assessments:
        promise_id = assessment.promise_id.strip()
        if promise_id and promise_id not in resolved and promise_id in known:
            logger.info("分析器补充兑现承诺 %s (%s)", promise_id, assessment.satisfaction_level)
            resolved.append(promise_id)
    return resolved


def build_resolved_promise_meta(
    parent_promises: Sequence[TrackedPromise],
    resolved_ids: Sequence[str],
) -> dict[str, ResolvedPromiseMeta]:
    by_id = {p.id: p for p in parent_promises}
    meta: dict[str, ResolvedPromiseMeta] = {}
    for promise_id in resolved_ids:
        promise = by_id.get(promise_id)
        if promise is None:
            logger.debug("兑现了未知的承诺 ID: %s", promise_id)
            continue
        meta[promise_id] = ResolvedPromiseMeta(
            promise_type=promise.promise_type,
            scope=promise.scope,
            urgency=promise.suggested_urgency,
        )
    return meta


def accumulate_promises(
    parent_promises: Sequence[TrackedPromise],
    new_promises: Sequence[TrackedPromise],
    promises_resolved: Sequence[str],
    config: EngineConfig,
    assessments: Sequence[PromisePayoffAssessment] = (),
) -> PromiseLifecycleResult:
    """承诺一步累积：兑现 → 老化 +1 → 过期，最后追加本页新承诺（不老化）。"""
    resolved_ids = augment_promises_resolved(parent_promises, promises_resolved, assessments)
    resolved_set = set(resolved_ids)

    surviving: list[TrackedPromise] = []
    expired: list[str] = []
    for promise in parent_promises:
        if promise.id in resolved_set:
            continue
        aged = promise.model_copy(update={"age": promise.age + 1})
        if aged.age > config.expiry_threshold(aged.scope):
            logger.debug(
                "承诺 %s 过期 (scope=%s, age=%d)", aged.id, aged.scope.value, aged.age
            )
            expired.append(aged.id)
            continue
        surviving.append(aged)

    return PromiseLifecycleResult(
        promises=(*surviving, *new_promises),
        resolved_meta=build_resolved_promise_meta(parent_promises, resolved_ids),
        expired_ids=tuple(expired),
    )
