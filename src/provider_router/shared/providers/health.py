"""Health bookkeeping for a single slot.

Latency is an exponential moving average; the error rate is a bounded
score that climbs on each failure and decays on each success.  The error
rate doubles as a simple circuit breaker:

    AVAILABLE   → (error_rate > threshold, non rate-limit error) → UNAVAILABLE
    UNAVAILABLE → (reported success / admin reset / probe)       → AVAILABLE

Rate-limit errors never trip the breaker; they set a cooldown instead.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from provider_router.shared.providers.types import RateLimitTier, SlotHealth

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class HealthPolicy:
    """Tuning constants for health updates."""

    latency_ema_weight: float = 0.2
    error_rate_step: float = 0.2
    error_rate_decay: float = 0.05
    error_rate_forgiveness: float = 0.3
    circuit_threshold: float = 0.6

    def record_success(
        self, health: SlotHealth, latency_ms: float, tokens: int, now: float
    ) -> None:
        w = self.latency_ema_weight
        health.latency_ms = round(health.latency_ms * (1 - w) + latency_ms * w, 2)
        health.total_requests += 1
        health.total_tokens += max(0, tokens)
        health.error_rate = max(0.0, round(health.error_rate - self.error_rate_decay, 4))
        health.last_checked = now

        if not health.available:
            logger.info("slot_circuit_closed", slot=str(health.slot_id), family=health.family)
        health.available = True

    def record_failure(self, health: SlotHealth, now: float) -> None:
        health.total_requests += 1
        health.total_errors += 1
        health.error_rate = min(1.0, round(health.error_rate + self.error_rate_step, 4))
        health.last_checked = now

    def should_trip(self, health: SlotHealth) -> bool:
        """A non rate-limit failure past the threshold opens the circuit."""
        return health.available and not health.suspended and health.error_rate > self.circuit_threshold

    def trip(self, health: SlotHealth) -> None:
        health.available = False
        logger.warning(
            "slot_circuit_opened",
            slot=str(health.slot_id),
            family=health.family,
            error_rate=health.error_rate,
            threshold=self.circuit_threshold,
        )

    def apply_cooldown(self, health: SlotHealth, cooldown_s: float, now: float) -> None:
        # A short 429 never shortens a longer cooldown already in force.
        health.rate_limited_until = max(health.rate_limited_until, now + cooldown_s)
        health.available = True

    def lift(
        self,
        health: SlotHealth,
        now: float,
        *,
        forgive: bool = True,
        clear_session_hits: bool = False,
    ) -> None:
        """Clear suspension and cooldown.

        ``forgive`` takes part of the error rate back; natural expiry of a
        cooldown passes ``False`` and keeps the error history intact.
        """
        health.suspended = False
        health.rate_limited_until = 0.0
        health.rate_limit_tier = RateLimitTier.SESSION
        health.available = True
        if forgive:
            health.error_rate = max(0.0, round(health.error_rate - self.error_rate_forgiveness, 4))
        health.last_checked = now
        if clear_session_hits:
            health.session_hits = 0
