"""Data Transfer Objects — Pydantic models for the admin API.

DTOs adapt the router's frozen dataclasses to JSON; they never expose a
credential, only its fingerprint.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from provider_router.shared.providers.types import RouterStats, SlotSnapshot


class ErrorResponse(BaseModel):
    code: str
    message: str


# ═══════════════════════════════════════════════════════════════
#  Slots
# ═══════════════════════════════════════════════════════════════
class CapabilitiesResponse(BaseModel):
    vision: bool
    streaming: bool
    max_context_k: int
    free_default: bool


class SlotResponse(BaseModel):
    key: str
    url: str
    display_name: str
    family: str
    key_fingerprint: str
    available: bool
    suspended: bool
    rate_limited_until: float
    rate_limit_tier: str
    session_hits: int
    latency_ms: float
    error_rate: float
    total_requests: int
    total_errors: int
    total_tokens: int
    last_checked: float
    capabilities: CapabilitiesResponse

    @classmethod
    def from_snapshot(cls, s: SlotSnapshot) -> SlotResponse:
        caps = s.capabilities
        return cls(
            key=s.slot_id.key,
            url=s.url,
            display_name=s.display_name,
            family=s.family,
            key_fingerprint=s.slot_id.key_fingerprint,
            available=s.available,
            suspended=s.suspended,
            rate_limited_until=s.rate_limited_until,
            rate_limit_tier=s.rate_limit_tier.value,
            session_hits=s.session_hits,
            latency_ms=s.latency_ms,
            error_rate=s.error_rate,
            total_requests=s.total_requests,
            total_errors=s.total_errors,
            total_tokens=s.total_tokens,
            last_checked=s.last_checked,
            capabilities=CapabilitiesResponse(
                vision=caps.vision,
                streaming=caps.streaming,
                max_context_k=caps.max_context_k,
                free_default=caps.free_default,
            ),
        )


class RegisterSlotRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    display_name: str | None = Field(None, max_length=200)
    family: str | None = Field(None, max_length=50)
    credential: str | None = None


class AvailabilityRequest(BaseModel):
    available: bool


class ForceLocalRequest(BaseModel):
    active: bool = True


class ForceLocalResponse(BaseModel):
    active: bool
    message: str
    local_slot: str | None = None


class ProbeResponse(BaseModel):
    ok: bool
    latency_ms: float
    status_code: int | None = None
    error: str | None = None


class CooldownResponse(BaseModel):
    summary: str
    suspended: list[SlotResponse] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════
#  Stats
# ═══════════════════════════════════════════════════════════════
class StatsResponse(BaseModel):
    slots: list[SlotResponse]
    total_requests: int
    total_failovers: int
    total_suspensions: int
    queue_length: int
    forced_local: bool
    last_updated: float

    @classmethod
    def from_stats(cls, stats: RouterStats) -> StatsResponse:
        return cls(
            slots=[SlotResponse.from_snapshot(s) for s in stats.slots],
            total_requests=stats.total_requests,
            total_failovers=stats.total_failovers,
            total_suspensions=stats.total_suspensions,
            queue_length=stats.queue_length,
            forced_local=stats.forced_local,
            last_updated=stats.last_updated,
        )
