"""Failover policy — picks a substitute when a whole family is exhausted.

The decision is pure: it reads the registry and returns a slot, never
mutating anything.  The router decides what to do with the answer.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from provider_router.shared.providers import scoring
from provider_router.shared.providers.registry import SlotRegistry
from provider_router.shared.providers.types import SlotHealth, TaskType

DEFAULT_FAILOVER_PRIORITY: tuple[str, ...] = (
    "local",
    "openrouter",
    "groq",
    "mistral",
    "together",
    "openai",
    "anthropic",
    "ollama-cloud",
)


class FailoverPolicy(Protocol):
    def pick(
        self, registry: SlotRegistry, exclude_family: str, now: float
    ) -> SlotHealth | None: ...


class PriorityFailoverPolicy:
    """Walks a fixed family order, then falls back to the best score."""

    def __init__(self, priority: Sequence[str] = DEFAULT_FAILOVER_PRIORITY) -> None:
        self._priority = tuple(p.strip().lower() for p in priority if p.strip())

    @property
    def priority(self) -> tuple[str, ...]:
        return self._priority

    def pick(
        self, registry: SlotRegistry, exclude_family: str, now: float
    ) -> SlotHealth | None:
        return pick_failover_candidate(
            registry, exclude_family, now, priority=self._priority
        )


def pick_failover_candidate(
    registry: SlotRegistry,
    exclude_family: str,
    now: float,
    *,
    priority: Sequence[str] = DEFAULT_FAILOVER_PRIORITY,
) -> SlotHealth | None:
    """First selectable slot by family priority, else the top-scored one."""
    available = registry.candidates(now, exclude_family=exclude_family)
    if not available:
        return None

    for family in priority:
        match = next((h for h in available if h.family == family), None)
        if match is not None:
            return match

    return scoring.best(available, TaskType.CHAT)
