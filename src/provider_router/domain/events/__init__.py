"""Router events — typed records of externally visible transitions.

Events are emitted *after* the registry has been updated, so a handler
that reads the router sees the post-transition state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from provider_router.shared.providers.types import SlotId


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class RouterEvent:
    """Base class for all router events."""

    event_type: str = "ROUTER_EVENT"
    occurred_at: datetime = field(default_factory=_utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProviderSuspendedEvent(RouterEvent):
    """A family ran out of usable slots because one of them was suspended."""

    event_type: str = "PROVIDER_SUSPENDED"
    slot_id: SlotId | None = None
    display_name: str = ""
    family: str = ""
    rate_limited_until: float = 0.0
    cooldown_hours: int = 0
    quota_description: str = ""
    failover_slot: SlotId | None = None
    failover_name: str | None = None

    @property
    def has_failover(self) -> bool:
        return self.failover_slot is not None


@dataclass(frozen=True, slots=True)
class QuotaExhaustedEvent(RouterEvent):
    """A rate limit was long enough to count as a spent quota."""

    event_type: str = "QUOTA_EXHAUSTED"
    slot_id: SlotId | None = None
    display_name: str = ""
    family: str = ""
    cooldown_s: float = 0.0
    quota_description: str = ""
