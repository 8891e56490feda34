"""Selector — ranks selectable slots for a task.

    score = 100
          - min(30, latency_ms / 100)
          - error_rate * 40
          + 20 if local
          + 15 if task == agent and max_context_k >= 100
          + 25 if task == vision and the slot supports vision
          + 10 if free by default

Ties go to the slot registered first.
"""

from __future__ import annotations

from collections.abc import Iterable

from provider_router.shared.providers.types import LOCAL_FAMILY, SlotHealth, TaskType


def score(health: SlotHealth, task: TaskType) -> float:
    caps = health.capabilities
    value = 100.0
    value -= min(30.0, health.latency_ms / 100)
    value -= health.error_rate * 40
    if health.family == LOCAL_FAMILY:
        value += 20
    if task == TaskType.AGENT and caps.max_context_k >= 100:
        value += 15
    if task == TaskType.VISION and caps.vision:
        value += 25
    if caps.free_default:
        value += 10
    return value


def rank(candidates: Iterable[SlotHealth], task: TaskType) -> list[SlotHealth]:
    """Candidates ordered best-first; ``sorted`` is stable so order breaks ties."""
    return sorted(candidates, key=lambda h: score(h, task), reverse=True)


def best(candidates: Iterable[SlotHealth], task: TaskType) -> SlotHealth | None:
    ranked = rank(candidates, task)
    return ranked[0] if ranked else None
