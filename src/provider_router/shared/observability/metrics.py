"""Prometheus metrics for the provider router."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


# ── Selection metrics ────────────────────────────────────────
SELECTIONS_TOTAL = Counter(
    "router_selections_total",
    "Provider selections answered",
    ["family", "outcome"],  # direct / failover / forced_local / queued
)

FAILOVERS_TOTAL = Counter(
    "router_failovers_total",
    "Selections that ignored the caller's preferred slot",
)

# ── Health metrics ───────────────────────────────────────────
RATE_LIMITS_TOTAL = Counter(
    "router_rate_limits_total",
    "Rate-limit reports by classified tier",
    ["family", "tier"],
)

SUSPENSIONS_TOTAL = Counter(
    "router_suspensions_total",
    "Slots transitioned into suspension",
    ["family"],
)

CIRCUIT_BREAKS_TOTAL = Counter(
    "router_circuit_breaks_total",
    "Slots made unavailable by accumulated errors",
    ["family"],
)

PROVIDER_LATENCY = Histogram(
    "router_provider_latency_seconds",
    "Reported provider call latency",
    ["family"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# ── Queue metrics ────────────────────────────────────────────
QUEUE_LENGTH = Gauge(
    "router_queue_length",
    "Requests waiting for a usable provider",
)

QUEUE_WAIT = Histogram(
    "router_queue_wait_seconds",
    "Time a queued request waited before being served",
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0),
)

QUEUE_TIMEOUTS_TOTAL = Counter(
    "router_queue_timeouts_total",
    "Queued requests rejected after their timeout elapsed",
)
