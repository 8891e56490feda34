"""Provider admin — REST router over the provider router's controls."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from provider_router.application.dtos import (
    AvailabilityRequest,
    CooldownResponse,
    ForceLocalRequest,
    ForceLocalResponse,
    ProbeResponse,
    RegisterSlotRequest,
    SlotResponse,
    StatsResponse,
)
from provider_router.dependencies import get_router
from provider_router.domain.exceptions import SlotNotFoundError
from provider_router.shared.providers.router import ProviderRouter
from provider_router.shared.providers.types import SlotSnapshot


# ═══════════════════════════════════════════════════════════════
#  Health
# ═══════════════════════════════════════════════════════════════
health_router = APIRouter(tags=["Health"])


@health_router.get("/health")
async def health_check(router: ProviderRouter = Depends(get_router)) -> dict:
    stats = router.get_stats()
    return {
        "status": "ok" if stats.available_count else "degraded",
        "slots": len(stats.slots),
        "available": stats.available_count,
        "suspended": stats.suspended_count,
        "queue_length": stats.queue_length,
    }


@health_router.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ═══════════════════════════════════════════════════════════════
#  Provider Slots (Admin)
# ═══════════════════════════════════════════════════════════════
providers_router = APIRouter(prefix="/providers", tags=["Provider Router"])


def _slot_or_404(router: ProviderRouter, slot_key: str) -> SlotSnapshot:
    slot = router.find_slot(slot_key)
    if slot is None:
        raise SlotNotFoundError(slot_key)
    return slot


@providers_router.get("/stats", response_model=StatsResponse)
async def get_stats(router: ProviderRouter = Depends(get_router)) -> StatsResponse:
    """Current snapshot of every slot plus aggregate counters."""
    return StatsResponse.from_stats(router.get_stats())


@providers_router.get("/cooldowns", response_model=CooldownResponse)
async def get_cooldowns(router: ProviderRouter = Depends(get_router)) -> CooldownResponse:
    return CooldownResponse(
        summary=router.get_cooldown_summary(),
        suspended=[SlotResponse.from_snapshot(s.slot) for s in router.suspended_slots()],
    )


@providers_router.post(
    "/slots", response_model=SlotResponse, status_code=status.HTTP_201_CREATED
)
async def register_slot(
    body: RegisterSlotRequest,
    router: ProviderRouter = Depends(get_router),
) -> SlotResponse:
    slot_id = router.register(body.url, body.display_name, body.family, body.credential)
    return SlotResponse.from_snapshot(_slot_or_404(router, slot_id.key))


@providers_router.post("/force-local", response_model=ForceLocalResponse)
async def force_local(
    body: ForceLocalRequest,
    router: ProviderRouter = Depends(get_router),
) -> ForceLocalResponse:
    result = router.force_local(body.active)
    return ForceLocalResponse(
        active=result.active,
        message=result.message,
        local_slot=result.local_slot.key if result.local_slot is not None else None,
    )


@providers_router.post("/{slot_key}/lift", response_model=SlotResponse)
async def lift_suspension(
    slot_key: str,
    router: ProviderRouter = Depends(get_router),
) -> SlotResponse:
    """Admin: clear suspension and cooldown for a slot."""
    slot = _slot_or_404(router, slot_key)
    router.lift_suspension(slot)
    return SlotResponse.from_snapshot(_slot_or_404(router, slot_key))


@providers_router.post("/{slot_key}/availability", response_model=SlotResponse)
async def set_availability(
    slot_key: str,
    body: AvailabilityRequest,
    router: ProviderRouter = Depends(get_router),
) -> SlotResponse:
    slot = _slot_or_404(router, slot_key)
    router.set_slot_available(slot.slot_id, body.available)
    return SlotResponse.from_snapshot(_slot_or_404(router, slot_key))


@providers_router.post("/{slot_key}/probe", response_model=ProbeResponse)
async def probe_slot(
    slot_key: str,
    router: ProviderRouter = Depends(get_router),
) -> ProbeResponse:
    """Probe the slot's endpoint without credentials."""
    slot = _slot_or_404(router, slot_key)
    result = await router.ping_provider(slot)
    return ProbeResponse(
        ok=result.ok,
        latency_ms=result.latency_ms,
        status_code=result.status_code,
        error=result.error,
    )
