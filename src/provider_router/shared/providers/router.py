"""Provider router — decides which (endpoint, credential) slot serves a request.

Composes the slot registry, the selector, quota classification, the
failover policy and the pending queue behind one object.  All state
transitions visible to the outside world happen here, and every one of
them republishes a full ``RouterStats`` snapshot.

The router never calls a provider itself (except for health probes) and
never retries: it answers "which slot" or "wait", and callers report back
what happened.

Usage::

    router = ProviderRouter(get_settings())
    local = router.register("http://localhost:11434", "Ollama", "local")

    selected = await router.select_provider(TaskType.CODE)
    ...
    router.report_success(selected.slot_id, latency_ms=820, tokens_used=1500)
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from typing import Any, Union

import httpx
import structlog

from provider_router.config import Settings, get_settings
from provider_router.domain.events import ProviderSuspendedEvent, QuotaExhaustedEvent
from provider_router.domain.exceptions import (
    LocalProviderMissingError,
    SlotNotFoundError,
    ValidationError,
)
from provider_router.shared.observability.metrics import (
    CIRCUIT_BREAKS_TOTAL,
    FAILOVERS_TOTAL,
    PROVIDER_LATENCY,
    RATE_LIMITS_TOTAL,
    SELECTIONS_TOTAL,
    SUSPENSIONS_TOTAL,
)
from provider_router.shared.providers import scoring
from provider_router.shared.providers.failover import FailoverPolicy, PriorityFailoverPolicy
from provider_router.shared.providers.families import best_free_model
from provider_router.shared.providers.health import HealthPolicy
from provider_router.shared.providers.probe import probe
from provider_router.shared.providers.queue import PendingQueue, QueuedRequest
from provider_router.shared.providers.quota import parse_retry_after, profile_for
from provider_router.shared.providers.registry import SlotRegistry
from provider_router.shared.providers.types import (
    ForceLocalResult,
    ProbeResult,
    ProviderCapabilities,
    RateLimitTier,
    RouterStats,
    SelectedSlot,
    SlotHealth,
    SlotId,
    SlotSnapshot,
    SuspendedSlot,
    TaskType,
    normalize_url,
)

logger = structlog.get_logger(__name__)

SlotRef = Union[SlotId, SelectedSlot, SlotSnapshot]
StatsCallback = Callable[[RouterStats], Any]
SuspensionCallback = Callable[[ProviderSuspendedEvent], Any]
QuotaCallback = Callable[[QuotaExhaustedEvent], Any]

_HOUR_S = 3600.0
_DAY_S = 24 * _HOUR_S


class ProviderRouter:
    """Selects, health-tracks and fails over between provider slots."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        failover_policy: FailoverPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self._registry = SlotRegistry()
        self._policy = HealthPolicy(
            latency_ema_weight=self._settings.latency_ema_weight,
            error_rate_step=self._settings.error_rate_step,
            error_rate_decay=self._settings.error_rate_decay,
            error_rate_forgiveness=self._settings.error_rate_forgiveness,
            circuit_threshold=self._settings.circuit_threshold,
        )
        self._failover = failover_policy or PriorityFailoverPolicy(self._settings.failover_order)
        self._queue = PendingQueue(
            self._resolve_queued,
            timeout_s=self._settings.queue_timeout_s,
            drain_interval_s=self._settings.drain_interval_s,
            wake_hint=self._seconds_until_next_expiry,
            on_change=self._publish,
        )

        self._http = http_client
        self._owns_http = http_client is None

        self._forced_local = False
        self._total_requests = 0
        self._total_failovers = 0
        self._total_suspensions = 0
        self._stats = RouterStats(last_updated=clock())

        self._stats_subscribers: list[StatsCallback] = []
        self._suspension_subscribers: list[SuspensionCallback] = []
        self._quota_subscribers: list[QuotaCallback] = []

    # ── Registration ─────────────────────────────────────────
    def register(
        self,
        url: str,
        display_name: str | None = None,
        family: str | None = None,
        credential: str | None = None,
    ) -> SlotId:
        """Register an endpoint/credential pair; idempotent for known pairs."""
        if not url or not url.strip():
            raise ValidationError("Provider URL must not be empty")
        slot_id, created = self._registry.register(url, display_name, family, credential)
        self._publish()
        if created:
            self._queue.drain()
        return slot_id

    def unregister(self, url: str, credential: str | None = None) -> bool:
        removed = self._registry.unregister(url, credential)
        self._publish()
        return removed is not None

    def set_available(self, url: str, credential: str | None, available: bool) -> None:
        """Force the circuit state of the slot at ``url`` (first registered if no credential)."""
        health = self._registry.resolve(url, credential)
        if health is None:
            raise SlotNotFoundError(url)
        self.set_slot_available(health.slot_id, available)

    def set_slot_available(self, slot: SlotRef, available: bool) -> None:
        """Force the circuit state; ``True`` also clears any suspension."""
        health = self._require(slot)
        self._registry.set_available(health.slot_id, available)
        self._publish()
        if available:
            self._queue.drain()

    # ── Selection ────────────────────────────────────────────
    async def select_provider(
        self,
        task: TaskType | str = TaskType.CHAT,
        preferred_url: str | None = None,
        require_vision: bool = False,
        preferred_credential: str | None = None,
    ) -> SelectedSlot:
        """Pick the slot that should serve a request.

        Waits in the pending queue when nothing is selectable; raises
        ``ProvidersUnavailableError`` if the queue timeout elapses first.
        """
        task = _coerce_task(task)
        self._total_requests += 1
        now = self._clock()
        self._expire_suspensions(now)
        if len(self._queue):
            self._queue.drain()

        if self._forced_local:
            local = self._registry.local_slot()
            if local is not None:
                SELECTIONS_TOTAL.labels(family=local.family, outcome="forced_local").inc()
                self._publish()
                return _selected(local)

        candidates = self._registry.candidates(now, require_vision=require_vision)
        if not candidates:
            SELECTIONS_TOTAL.labels(family="none", outcome="queued").inc()
            logger.warning(
                "no_available_providers",
                task=task.value,
                require_vision=require_vision,
                total_configured=len(self._registry),
            )
            future = self._queue.enqueue(task, require_vision=require_vision)
            return await future

        chosen: SlotHealth | None = None
        home: SlotHealth | None = None
        if preferred_url:
            chosen = _preferred_candidate(candidates, preferred_url, preferred_credential)
            if chosen is None:
                home = self._registry.resolve(preferred_url, preferred_credential)
                if home is not None:
                    same_family = [c for c in candidates if c.family == home.family]
                    chosen = scoring.best(same_family, task)

        failover = bool(preferred_url) and (chosen is None or home is not None)
        if chosen is None:
            chosen = scoring.rank(candidates, task)[0]

        if failover:
            self._total_failovers += 1
            FAILOVERS_TOTAL.inc()
            logger.info(
                "provider_failover",
                preferred=preferred_url,
                selected=str(chosen.slot_id),
                family=chosen.family,
                same_family=home is not None and chosen.family == home.family,
            )

        SELECTIONS_TOTAL.labels(
            family=chosen.family, outcome="failover" if failover else "direct"
        ).inc()
        self._publish()
        return _selected(chosen, failover=failover)

    # ── Outcome reporting ────────────────────────────────────
    def report_success(self, slot: SlotRef, latency_ms: float, tokens_used: int = 0) -> None:
        health = self._lookup(slot, "report_success")
        if health is None:
            return
        self._policy.record_success(health, latency_ms, tokens_used, self._clock())
        PROVIDER_LATENCY.labels(family=health.family).observe(max(0.0, latency_ms) / 1000)
        self._publish()
        self._queue.drain()

    def report_error(
        self,
        slot: SlotRef,
        is_rate_limit: bool = False,
        cooldown_s: float | None = None,
    ) -> None:
        health = self._lookup(slot, "report_error")
        if health is None:
            return
        now = self._clock()
        self._policy.record_failure(health, now)

        if is_rate_limit:
            if cooldown_s is None or cooldown_s < 0:
                cooldown_s = self._settings.default_cooldown_s
            self._apply_rate_limit(health, cooldown_s, now)
        elif self._policy.should_trip(health):
            self._policy.trip(health)
            CIRCUIT_BREAKS_TOTAL.labels(family=health.family).inc()

        self._publish()

    def report_rate_limit(self, slot: SlotRef, retry_after: str | float | None = None) -> None:
        """Report a 429; ``retry_after`` is a raw header value or seconds."""
        cooldown_s = parse_retry_after(retry_after, now=self._clock())
        self.report_error(slot, is_rate_limit=True, cooldown_s=cooldown_s)

    # ── Suspension & failover ────────────────────────────────
    def lift_suspension(self, slot: SlotRef) -> None:
        health = self._require(slot)
        self._policy.lift(health, self._clock())
        logger.info("suspension_lifted", slot=str(health.slot_id), family=health.family)
        self._publish()
        self._queue.drain()

    def reset_cooldown(self, slot: SlotRef) -> None:
        """Admin reset — clears cooldown, suspension and session hits."""
        health = self._require(slot)
        self._policy.lift(health, self._clock(), clear_session_hits=True)
        logger.info("cooldown_reset", slot=str(health.slot_id), family=health.family)
        self._publish()
        self._queue.drain()

    def trigger_failover(self, slot: SlotRef, cooldown_s: float = _DAY_S) -> SlotSnapshot | None:
        """Manually cool a slot down and return the slot that should replace it."""
        health = self._require(slot)
        now = self._clock()
        self._apply_rate_limit(health, cooldown_s, now)
        self._publish()
        candidate = self._failover.pick(self._registry, health.family, now)
        return candidate.snapshot() if candidate is not None else None

    # ── Forced-local override ────────────────────────────────
    def force_local(self, active: bool = True) -> ForceLocalResult:
        if not active:
            self._forced_local = False
            logger.info("force_local_toggled", active=False)
            self._publish()
            self._queue.drain()
            return ForceLocalResult(
                active=False, message="Local mode disabled: automatic routing restored."
            )

        local = self._registry.local_slot()
        if local is None:
            logger.warning("force_local_rejected", reason="no_local_slot")
            raise LocalProviderMissingError()

        self._forced_local = True
        logger.info("force_local_toggled", active=True)
        self._publish()
        return ForceLocalResult(
            active=True,
            message=f"Local mode forced: all traffic is routed to {local.display_name}.",
            local_slot=local.slot_id,
        )

    def is_forced_local(self) -> bool:
        return self._forced_local

    # ── Queries ──────────────────────────────────────────────
    def get_slot(self, slot: SlotRef) -> SlotSnapshot | None:
        health = self._registry.get(_slot_id(slot))
        return health.snapshot() if health is not None else None

    def find_slot(self, key: str) -> SlotSnapshot | None:
        """Look a slot up by its ``SlotId.key`` string."""
        health = self._registry.by_key(key)
        return health.snapshot() if health is not None else None

    def all_slots(self) -> list[SlotSnapshot]:
        return [h.snapshot() for h in self._registry]

    def visible_slots(self) -> list[SlotSnapshot]:
        return [h.snapshot() for h in self._registry if not h.suspended]

    def suspended_slots(self) -> list[SuspendedSlot]:
        now = self._clock()
        return [
            SuspendedSlot(slot=h.snapshot(), remaining_s=max(0.0, h.rate_limited_until - now))
            for h in self._registry
            if h.suspended
        ]

    def is_suspended(self, slot: SlotRef) -> bool:
        health = self._registry.get(_slot_id(slot))
        return health.suspended if health is not None else False

    def get_capabilities(self, slot: SlotRef) -> ProviderCapabilities | None:
        health = self._registry.get(_slot_id(slot))
        return health.capabilities if health is not None else None

    def supports_vision(self, slot: SlotRef) -> bool:
        caps = self.get_capabilities(slot)
        return caps.vision if caps is not None else False

    def best_free_model(self, family: str) -> str | None:
        return best_free_model(family)

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    def get_stats(self) -> RouterStats:
        return self._stats

    def get_cooldown_summary(self) -> str:
        """One-line listing of cooling and suspended slots for a status bar."""
        now = self._clock()
        parts: list[str] = []
        for h in self._registry:
            if not h.is_cooling(now):
                continue
            remaining = h.rate_limited_until - now
            label = "suspended" if h.suspended else f"{h.rate_limit_tier.value} cooldown"
            parts.append(f"{h.display_name}: {_format_remaining(remaining)} ({label})")
        return ", ".join(parts) if parts else "No active cooldowns"

    # ── Subscriptions ────────────────────────────────────────
    def on_stats_changed(self, callback: StatsCallback) -> None:
        self._stats_subscribers.append(callback)

    def on_provider_suspended(self, callback: SuspensionCallback) -> None:
        self._suspension_subscribers.append(callback)

    def on_quota_exhausted(self, callback: QuotaCallback) -> None:
        self._quota_subscribers.append(callback)

    # ── Health probe ─────────────────────────────────────────
    async def ping_provider(self, slot: SlotRef, credential: str | None = None) -> ProbeResult:
        """Probe a slot's endpoint and fold the outcome into its health."""
        health = self._require(slot)
        url = health.url
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._settings.probe_timeout_s)
            self._owns_http = True

        result = await probe(self._http, url, credential, timeout_s=self._settings.probe_timeout_s)

        # The slot may have been unregistered while the probe was in flight.
        health = self._registry.get(health.slot_id)
        if health is None:
            return result

        now = self._clock()
        health.last_checked = now
        recovered = False
        if result.error is not None:
            health.available = False
            health.suspended = False
            if health.rate_limit_tier == RateLimitTier.SUSPENDED:
                health.rate_limit_tier = RateLimitTier.SESSION
            logger.warning("slot_probe_unreachable", slot=str(health.slot_id), error=result.error)
        else:
            health.latency_ms = result.latency_ms
            if result.ok:
                if health.suspended:
                    health.suspended = False
                    health.rate_limited_until = 0.0
                    health.rate_limit_tier = RateLimitTier.SESSION
                    logger.info("suspension_lifted_by_probe", slot=str(health.slot_id))
                health.available = True
                recovered = True

        self._publish()
        if recovered:
            self._queue.drain()
        return result

    # ── Lifecycle ────────────────────────────────────────────
    async def close(self) -> None:
        await self._queue.close("Router closed")
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
        logger.info("router_closed")

    async def __aenter__(self) -> ProviderRouter:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── Internals ────────────────────────────────────────────
    def _apply_rate_limit(self, health: SlotHealth, cooldown_s: float, now: float) -> None:
        """Set the cooldown and classify it into a tier (session/quota/suspended)."""
        self._policy.apply_cooldown(health, cooldown_s, now)
        profile = profile_for(health.family)
        tier = profile.classify(cooldown_s)
        RATE_LIMITS_TOTAL.labels(family=health.family, tier=tier.value).inc()
        self._queue.notify()

        log = logger.bind(slot=str(health.slot_id), family=health.family, cooldown_s=cooldown_s)

        if tier == RateLimitTier.SESSION:
            health.session_hits += 1
            if not health.suspended:
                health.rate_limit_tier = RateLimitTier.SESSION
            log.debug("rate_limit_session", session_hits=health.session_hits)
            return

        if tier == RateLimitTier.QUOTA:
            if not health.suspended:
                health.rate_limit_tier = RateLimitTier.QUOTA
            log.info("rate_limit_quota", quota=profile.description)
            self._emit(
                self._quota_subscribers,
                QuotaExhaustedEvent(
                    slot_id=health.slot_id,
                    display_name=health.display_name,
                    family=health.family,
                    cooldown_s=cooldown_s,
                    quota_description=profile.description,
                ),
            )
            return

        health.rate_limit_tier = RateLimitTier.SUSPENDED
        if health.suspended:
            log.debug("rate_limit_already_suspended")
            return

        health.suspended = True
        health.available = True
        self._total_suspensions += 1
        SUSPENSIONS_TOTAL.labels(family=health.family).inc()

        usable_siblings = [s for s in self._registry.siblings(health) if s.is_selectable(now)]
        if usable_siblings:
            log.info(
                "slot_suspended_sibling_available",
                siblings=[str(s.slot_id) for s in usable_siblings],
            )
            return

        failover = self._failover.pick(self._registry, health.family, now)
        event = ProviderSuspendedEvent(
            slot_id=health.slot_id,
            display_name=health.display_name,
            family=health.family,
            rate_limited_until=health.rate_limited_until,
            cooldown_hours=math.ceil(cooldown_s / _HOUR_S),
            quota_description=profile.description,
            failover_slot=failover.slot_id if failover is not None else None,
            failover_name=failover.display_name if failover is not None else None,
        )
        log.warning(
            "provider_suspended",
            cooldown_hours=event.cooldown_hours,
            quota=profile.description,
            failover=str(failover.slot_id) if failover is not None else None,
        )
        self._emit(self._suspension_subscribers, event)

    def _expire_suspensions(self, now: float) -> None:
        expired = [h for h in self._registry if h.suspended and h.rate_limited_until <= now]
        for h in expired:
            self._policy.lift(h, now, forgive=False)
            logger.info("suspension_expired", slot=str(h.slot_id), family=h.family)
        if expired:
            self._publish()

    def _resolve_queued(self, request: QueuedRequest) -> SelectedSlot | None:
        now = self._clock()
        self._expire_suspensions(now)
        if self._forced_local:
            local = self._registry.local_slot()
            if local is not None:
                return _selected(local, queued=True)
        chosen = scoring.best(
            self._registry.candidates(now, require_vision=request.require_vision),
            request.task,
        )
        if chosen is None:
            return None
        SELECTIONS_TOTAL.labels(family=chosen.family, outcome="dequeued").inc()
        return _selected(chosen, queued=True)

    def _seconds_until_next_expiry(self) -> float | None:
        now = self._clock()
        pending = [h.rate_limited_until - now for h in self._registry if h.is_cooling(now)]
        return min(pending) if pending else None

    def _lookup(self, slot: SlotRef, operation: str) -> SlotHealth | None:
        health = self._registry.get(_slot_id(slot))
        if health is None:
            logger.warning("report_for_unknown_slot", operation=operation, slot=str(_slot_id(slot)))
        return health

    def _require(self, slot: SlotRef) -> SlotHealth:
        health = self._registry.get(_slot_id(slot))
        if health is None:
            raise SlotNotFoundError(str(_slot_id(slot)))
        return health

    def _publish(self) -> None:
        self._stats = RouterStats(
            slots=tuple(h.snapshot() for h in self._registry),
            total_requests=self._total_requests,
            total_failovers=self._total_failovers,
            total_suspensions=self._total_suspensions,
            queue_length=len(self._queue),
            forced_local=self._forced_local,
            last_updated=self._clock(),
        )
        self._emit(self._stats_subscribers, self._stats)

    @staticmethod
    def _emit(subscribers: list[Callable[[Any], Any]], payload: Any) -> None:
        for i, callback in enumerate(list(subscribers)):
            try:
                callback(payload)
            except Exception as exc:
                logger.error(
                    "subscriber_error",
                    payload_type=type(payload).__name__,
                    handler_index=i,
                    error=str(exc),
                )


def _slot_id(slot: SlotRef) -> SlotId:
    return slot if isinstance(slot, SlotId) else slot.slot_id


def _preferred_candidate(
    candidates: list[SlotHealth], url: str, credential: str | None
) -> SlotHealth | None:
    """The candidate matching the caller's preference, if it is selectable.

    Without a credential any selectable slot at that URL counts, first
    registered first.
    """
    if credential is not None:
        wanted = SlotId.of(url, credential)
        return next((c for c in candidates if c.slot_id == wanted), None)
    target = normalize_url(url)
    return next((c for c in candidates if c.slot_id.url == target), None)


def _coerce_task(task: TaskType | str) -> TaskType:
    try:
        return TaskType(task)
    except ValueError:
        raise ValidationError(
            f"Unknown task class {task!r}; expected one of "
            + ", ".join(t.value for t in TaskType)
        ) from None


def _selected(health: SlotHealth, *, failover: bool = False, queued: bool = False) -> SelectedSlot:
    return SelectedSlot(
        slot_id=health.slot_id,
        url=health.url,
        display_name=health.display_name,
        family=health.family,
        capabilities=health.capabilities,
        failover=failover,
        queued=queued,
    )


def _format_remaining(seconds: float) -> str:
    if seconds >= _HOUR_S:
        return f"{math.ceil(seconds / _HOUR_S)}h"
    if seconds >= 60:
        return f"{math.ceil(seconds / 60)}m"
    return f"{math.ceil(seconds)}s"
