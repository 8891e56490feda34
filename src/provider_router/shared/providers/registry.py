"""Slot registry — owns the health record of every (endpoint, credential) pair.

Insertion order is preserved and doubles as the selection tie-breaker:
the first registered slot wins among equal scores.
"""

from __future__ import annotations

from collections.abc import Iterator

import structlog

from provider_router.shared.providers.families import capabilities_for, normalize_family
from provider_router.shared.providers.types import (
    LOCAL_FAMILY,
    RateLimitTier,
    SlotHealth,
    SlotId,
    normalize_url,
)

logger = structlog.get_logger(__name__)


class SlotRegistry:
    """In-memory map of ``SlotId`` → ``SlotHealth``."""

    def __init__(self) -> None:
        self._slots: dict[SlotId, SlotHealth] = {}

    def register(
        self,
        url: str,
        display_name: str | None = None,
        family: str | None = None,
        credential: str | None = None,
    ) -> tuple[SlotId, bool]:
        """Register a slot; returns its id and whether it was newly created.

        Re-registering a known identity leaves its health untouched.
        """
        slot_id = SlotId.of(url, credential)
        if slot_id in self._slots:
            return slot_id, False

        fam = normalize_family(family, url)
        self._slots[slot_id] = SlotHealth(
            slot_id=slot_id,
            url=url.strip().rstrip("/"),
            display_name=display_name or fam,
            family=fam,
            capabilities=capabilities_for(fam),
        )
        logger.info(
            "slot_registered",
            slot=str(slot_id),
            family=fam,
            name=display_name,
            total_slots=len(self._slots),
        )
        return slot_id, True

    def unregister(self, url: str, credential: str | None = None) -> SlotHealth | None:
        slot_id = SlotId.of(url, credential)
        removed = self._slots.pop(slot_id, None)
        if removed is not None:
            logger.info("slot_unregistered", slot=str(slot_id), family=removed.family)
        return removed

    def set_available(self, slot_id: SlotId, available: bool) -> SlotHealth | None:
        """Force the circuit state.  ``True`` also clears any suspension."""
        health = self._slots.get(slot_id)
        if health is None:
            return None
        health.available = available
        # An unavailable slot is gated harder than a suspended one.
        health.suspended = False
        if available:
            health.rate_limit_tier = RateLimitTier.SESSION
        logger.info("slot_availability_forced", slot=str(slot_id), available=available)
        return health

    # ── Lookup ───────────────────────────────────────────────
    def get(self, slot_id: SlotId) -> SlotHealth | None:
        return self._slots.get(slot_id)

    def resolve(self, url: str, credential: str | None = None) -> SlotHealth | None:
        """Resolve a URL (and optional credential) to a registered slot.

        Without a credential, the first slot registered at that URL matches.
        """
        if credential is not None:
            return self._slots.get(SlotId.of(url, credential))
        target = normalize_url(url)
        return next((h for h in self._slots.values() if h.slot_id.url == target), None)

    def by_key(self, key: str) -> SlotHealth | None:
        return next((h for h in self._slots.values() if h.slot_id.key == key), None)

    def siblings(self, health: SlotHealth) -> list[SlotHealth]:
        """Other slots of the same family."""
        return [
            h for h in self._slots.values()
            if h.family == health.family and h.slot_id != health.slot_id
        ]

    def candidates(
        self,
        now: float,
        *,
        require_vision: bool = False,
        family: str | None = None,
        exclude_family: str | None = None,
    ) -> list[SlotHealth]:
        """Selectable slots, in registration order."""
        result: list[SlotHealth] = []
        for h in self._slots.values():
            if not h.is_selectable(now):
                continue
            if require_vision and not h.capabilities.vision:
                continue
            if family is not None and h.family != family:
                continue
            if exclude_family is not None and h.family == exclude_family:
                continue
            result.append(h)
        return result

    def local_slot(self) -> SlotHealth | None:
        return next((h for h in self._slots.values() if h.family == LOCAL_FAMILY), None)

    def __iter__(self) -> Iterator[SlotHealth]:
        return iter(list(self._slots.values()))

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, slot_id: object) -> bool:
        return slot_id in self._slots
