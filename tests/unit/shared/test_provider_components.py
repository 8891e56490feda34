"""Tests for the router's building blocks.

Covers quota classification, family detection, scoring, the slot
registry, health bookkeeping, the failover policy and probe endpoints.
"""

from __future__ import annotations

import math
from email.utils import formatdate

import pytest

from provider_router.shared.providers import scoring
from provider_router.shared.providers.failover import (
    PriorityFailoverPolicy,
    pick_failover_candidate,
)
from provider_router.shared.providers.families import (
    best_free_model,
    capabilities_for,
    detect_provider_family,
)
from provider_router.shared.providers.health import HealthPolicy
from provider_router.shared.providers.probe import probe_request
from provider_router.shared.providers.quota import (
    DEFAULT_PROFILE,
    classify_cooldown,
    parse_retry_after,
    profile_for,
)
from provider_router.shared.providers.registry import SlotRegistry
from provider_router.shared.providers.types import RateLimitTier, SlotHealth, SlotId, TaskType

NOW = 1_700_000_000.0


# ═══════════════════════════════════════════════════════════════
#  Quota profiles
# ═══════════════════════════════════════════════════════════════
class TestQuotaProfiles:
    def test_short_cooldown_is_session(self) -> None:
        assert classify_cooldown("gemini", 120) == RateLimitTier.SESSION

    def test_medium_cooldown_is_quota(self) -> None:
        assert classify_cooldown("gemini", 3600) == RateLimitTier.QUOTA

    def test_long_cooldown_is_suspended(self) -> None:
        profile = profile_for("groq")
        assert classify_cooldown("groq", profile.suspension_threshold_s) == RateLimitTier.SUSPENDED

    def test_threshold_boundaries(self) -> None:
        profile = profile_for("gemini")
        assert profile.classify(profile.session_threshold_s - 1) == RateLimitTier.SESSION
        assert profile.classify(profile.session_threshold_s) == RateLimitTier.QUOTA
        assert profile.classify(profile.suspension_threshold_s - 1) == RateLimitTier.QUOTA

    def test_unknown_family_uses_default_profile(self) -> None:
        assert profile_for("some-new-cloud") is DEFAULT_PROFILE

    def test_local_is_never_suspended(self) -> None:
        assert classify_cooldown("local", 7 * 24 * 3600) == RateLimitTier.SESSION

    def test_profiles_are_ordered(self) -> None:
        for family in ("gemini", "groq", "openrouter", "openai", "anthropic"):
            p = profile_for(family)
            assert 0 < p.session_threshold_s < p.suspension_threshold_s
            assert p.description


class TestParseRetryAfter:
    def test_seconds(self) -> None:
        assert parse_retry_after("120") == 120.0
        assert parse_retry_after(" 1.5 ") == 1.5
        assert parse_retry_after(30) == 30.0

    def test_http_date(self) -> None:
        header = formatdate(NOW + 90, usegmt=True)
        assert parse_retry_after(header, now=NOW) == pytest.approx(90.0, abs=1.0)

    def test_past_date_is_zero(self) -> None:
        header = formatdate(NOW - 600, usegmt=True)
        assert parse_retry_after(header, now=NOW) == 0.0

    def test_unparseable(self) -> None:
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None
        assert parse_retry_after("soon") is None

    def test_negative_clamped(self) -> None:
        assert parse_retry_after(-5) == 0.0


# ═══════════════════════════════════════════════════════════════
#  Families
# ═══════════════════════════════════════════════════════════════
class TestFamilies:
    @pytest.mark.parametrize(
        ("url", "family"),
        [
            ("http://localhost:11434", "local"),
            ("http://127.0.0.1:8080/v1", "local"),
            ("https://generativelanguage.googleapis.com/v1beta", "gemini"),
            ("https://api.openai.com/v1", "openai"),
            ("https://openrouter.ai/api/v1", "openrouter"),
            ("https://api.together.xyz/v1", "together"),
            ("https://api.mistral.ai/v1", "mistral"),
            ("https://api.groq.com/openai/v1", "groq"),
            ("https://api.anthropic.com/v1", "anthropic"),
            ("https://api.ollama.com", "ollama-cloud"),
            ("https://llm.example.net/v1", "cloud"),
        ],
    )
    def test_detect_provider_family(self, url: str, family: str) -> None:
        assert detect_provider_family(url) == family

    def test_capabilities(self) -> None:
        assert capabilities_for("anthropic").max_context_k == 200
        assert capabilities_for("groq").vision is False
        assert capabilities_for("gemini").free_default is True

    def test_unknown_family_capabilities(self) -> None:
        assert capabilities_for("cloud") == capabilities_for("ollama-cloud")

    def test_best_free_model(self) -> None:
        assert best_free_model("gemini") == "gemini-1.5-flash"
        assert best_free_model("groq") == "llama-3.1-8b-instant"
        assert best_free_model("openrouter") is None
        assert best_free_model("anthropic") is None


# ═══════════════════════════════════════════════════════════════
#  SlotId
# ═══════════════════════════════════════════════════════════════
class TestSlotId:
    def test_normalizes_url(self) -> None:
        assert SlotId.of("HTTP://Localhost:11434/") == SlotId.of("http://localhost:11434")

    def test_credential_is_fingerprinted(self) -> None:
        slot = SlotId.of("https://api.groq.com/openai/v1", "gsk_secret_value")
        assert "gsk_secret_value" not in repr(slot)
        assert len(slot.key_fingerprint) == 12

    def test_distinct_credentials_distinct_slots(self) -> None:
        a = SlotId.of("https://api.groq.com/openai/v1", "key-1")
        b = SlotId.of("https://api.groq.com/openai/v1", "key-2")
        assert a != b
        assert a.key != b.key


# ═══════════════════════════════════════════════════════════════
#  SlotRegistry
# ═══════════════════════════════════════════════════════════════
class TestSlotRegistry:
    def test_register_detects_family(self) -> None:
        registry = SlotRegistry()
        slot_id, created = registry.register("http://localhost:11434", "Ollama")
        assert created is True
        health = registry.get(slot_id)
        assert health is not None
        assert health.family == "local"
        assert health.capabilities.free_default is True

    def test_register_is_idempotent(self) -> None:
        registry = SlotRegistry()
        slot_id, _ = registry.register("https://api.groq.com/openai/v1", "Groq", "groq", "k1")
        health = registry.get(slot_id)
        assert health is not None
        health.error_rate = 0.4

        again, created = registry.register("https://api.groq.com/openai/v1/", "Groq 2", "groq", "k1")
        assert again == slot_id
        assert created is False
        assert registry.get(slot_id).error_rate == 0.4  # type: ignore[union-attr]
        assert len(registry) == 1

    def test_unregister(self) -> None:
        registry = SlotRegistry()
        slot_id, _ = registry.register("https://api.groq.com/openai/v1", "Groq", "groq", "k1")
        assert registry.unregister("https://api.groq.com/openai/v1", "k1") is not None
        assert slot_id not in registry
        assert registry.unregister("https://api.groq.com/openai/v1", "k1") is None

    def test_set_available_true_clears_suspension(self) -> None:
        registry = SlotRegistry()
        slot_id, _ = registry.register("https://api.groq.com/openai/v1", "Groq", "groq", "k1")
        health = registry.get(slot_id)
        assert health is not None
        health.suspended = True
        health.rate_limit_tier = RateLimitTier.SUSPENDED

        registry.set_available(slot_id, True)
        assert health.suspended is False
        assert health.available is True
        assert health.rate_limit_tier == RateLimitTier.SESSION

    def test_candidates_filters(self) -> None:
        registry = SlotRegistry()
        local, _ = registry.register("http://localhost:11434", "Ollama", "local")
        groq, _ = registry.register("https://api.groq.com/openai/v1", "Groq", "groq", "k1")
        gemini, _ = registry.register("https://generativelanguage.googleapis.com/v1beta", "Gemini", "gemini", "g1")

        registry.get(local).available = False  # type: ignore[union-attr]
        registry.get(gemini).rate_limited_until = NOW + 60  # type: ignore[union-attr]

        ids = [h.slot_id for h in registry.candidates(NOW)]
        assert ids == [groq]
        assert registry.candidates(NOW, require_vision=True) == []

    def test_siblings(self) -> None:
        registry = SlotRegistry()
        a, _ = registry.register("https://api.groq.com/openai/v1", "Groq A", "groq", "k1")
        b, _ = registry.register("https://api.groq.com/openai/v1", "Groq B", "groq", "k2")
        registry.register("http://localhost:11434", "Ollama", "local")
        siblings = registry.siblings(registry.get(a))  # type: ignore[arg-type]
        assert [s.slot_id for s in siblings] == [b]

    def test_resolve_by_url_without_credential(self) -> None:
        registry = SlotRegistry()
        first, _ = registry.register("https://api.groq.com/openai/v1", "Groq A", "groq", "k1")
        registry.register("https://api.groq.com/openai/v1", "Groq B", "groq", "k2")
        resolved = registry.resolve("https://api.groq.com/openai/v1/")
        assert resolved is not None
        assert resolved.slot_id == first


# ═══════════════════════════════════════════════════════════════
#  Scoring
# ═══════════════════════════════════════════════════════════════
class TestScoring:
    @pytest.fixture
    def registry(self) -> SlotRegistry:
        registry = SlotRegistry()
        registry.register("http://localhost:11434", "Ollama", "local")
        registry.register("https://api.anthropic.com/v1", "Claude", "anthropic", "a1")
        registry.register("https://api.groq.com/openai/v1", "Groq", "groq", "k1")
        return registry

    def test_base_scores(self, registry: SlotRegistry) -> None:
        local, anthropic, groq = list(registry)
        assert scoring.score(local, TaskType.CHAT) == 130.0
        assert scoring.score(anthropic, TaskType.CHAT) == 100.0
        assert scoring.score(groq, TaskType.CHAT) == 100.0

    def test_agent_prefers_large_context(self, registry: SlotRegistry) -> None:
        _, anthropic, groq = list(registry)
        assert scoring.score(anthropic, TaskType.AGENT) == 115.0
        assert scoring.score(groq, TaskType.AGENT) == 100.0

    def test_vision_bonus(self, registry: SlotRegistry) -> None:
        local, _, groq = list(registry)
        assert scoring.score(local, TaskType.VISION) == 155.0
        assert scoring.score(groq, TaskType.VISION) == 100.0

    def test_latency_penalty_capped(self, registry: SlotRegistry) -> None:
        _, anthropic, _ = list(registry)
        anthropic.latency_ms = 1500
        assert scoring.score(anthropic, TaskType.CHAT) == 85.0
        anthropic.latency_ms = 60_000
        assert scoring.score(anthropic, TaskType.CHAT) == 70.0

    def test_error_penalty(self, registry: SlotRegistry) -> None:
        _, anthropic, _ = list(registry)
        anthropic.error_rate = 0.5
        assert scoring.score(anthropic, TaskType.CHAT) == 80.0

    def test_ties_go_to_first_registered(self, registry: SlotRegistry) -> None:
        _, anthropic, groq = list(registry)
        best = scoring.best([anthropic, groq], TaskType.CHAT)
        assert best is anthropic
        best = scoring.best([groq, anthropic], TaskType.CHAT)
        assert best is groq

    def test_best_of_nothing(self) -> None:
        assert scoring.best([], TaskType.CHAT) is None


# ═══════════════════════════════════════════════════════════════
#  HealthPolicy
# ═══════════════════════════════════════════════════════════════
class TestHealthPolicy:
    @pytest.fixture
    def health(self) -> SlotHealth:
        registry = SlotRegistry()
        slot_id, _ = registry.register("https://api.openai.com/v1", "OpenAI", "openai", "sk")
        health = registry.get(slot_id)
        assert health is not None
        return health

    def test_latency_ema(self, health: SlotHealth) -> None:
        policy = HealthPolicy()
        policy.record_success(health, 1000, 10, NOW)
        assert health.latency_ms == 200.0
        policy.record_success(health, 1000, 10, NOW)
        assert health.latency_ms == 360.0
        assert health.total_tokens == 20
        assert health.total_requests == 2

    def test_error_rate_bounds(self, health: SlotHealth) -> None:
        policy = HealthPolicy()
        for _ in range(10):
            policy.record_failure(health, NOW)
        assert health.error_rate == 1.0
        assert health.total_errors == 10
        for _ in range(40):
            policy.record_success(health, 10, 0, NOW)
        assert health.error_rate == 0.0

    def test_trip_threshold(self, health: SlotHealth) -> None:
        policy = HealthPolicy(circuit_threshold=0.6)
        for _ in range(3):
            policy.record_failure(health, NOW)
        assert math.isclose(health.error_rate, 0.6)
        assert policy.should_trip(health) is False
        policy.record_failure(health, NOW)
        assert policy.should_trip(health) is True

    def test_lift_forgives_errors(self, health: SlotHealth) -> None:
        policy = HealthPolicy()
        health.error_rate = 0.5
        health.suspended = True
        health.rate_limited_until = NOW + 3600
        health.session_hits = 3
        policy.lift(health, NOW)
        assert health.suspended is False
        assert health.rate_limited_until == 0.0
        assert health.error_rate == 0.2
        assert health.session_hits == 3
        policy.lift(health, NOW, clear_session_hits=True)
        assert health.session_hits == 0

    def test_lift_without_forgiveness(self, health: SlotHealth) -> None:
        policy = HealthPolicy()
        health.error_rate = 0.6
        health.suspended = True
        health.rate_limit_tier = RateLimitTier.SUSPENDED
        health.rate_limited_until = NOW + 3600
        policy.lift(health, NOW, forgive=False)
        assert health.suspended is False
        assert health.rate_limit_tier == RateLimitTier.SESSION
        assert health.error_rate == 0.6

    def test_short_cooldown_does_not_shorten_long_one(self, health: SlotHealth) -> None:
        policy = HealthPolicy()
        policy.apply_cooldown(health, 3600, NOW)
        policy.apply_cooldown(health, 10, NOW)
        assert health.rate_limited_until == NOW + 3600


# ═══════════════════════════════════════════════════════════════
#  Failover policy
# ═══════════════════════════════════════════════════════════════
class TestFailoverPolicy:
    def test_follows_priority_order(self) -> None:
        registry = SlotRegistry()
        registry.register("https://api.anthropic.com/v1", "Claude", "anthropic", "a1")
        groq, _ = registry.register("https://api.groq.com/openai/v1", "Groq", "groq", "k1")
        registry.register("https://generativelanguage.googleapis.com/v1beta", "Gemini", "gemini", "g1")
        picked = pick_failover_candidate(registry, "gemini", NOW)
        assert picked is not None
        assert picked.slot_id == groq

    def test_excludes_own_family(self) -> None:
        registry = SlotRegistry()
        registry.register("https://api.groq.com/openai/v1", "Groq A", "groq", "k1")
        registry.register("https://api.groq.com/openai/v1", "Groq B", "groq", "k2")
        assert pick_failover_candidate(registry, "groq", NOW) is None

    def test_falls_back_to_best_score(self) -> None:
        registry = SlotRegistry()
        registry.register("https://llm.example.net/v1", "Example", "cloud", "c1")
        gemini, _ = registry.register(
            "https://generativelanguage.googleapis.com/v1beta", "Gemini", "gemini", "g1"
        )
        picked = pick_failover_candidate(registry, "groq", NOW)
        assert picked is not None
        assert picked.slot_id == gemini

    def test_skips_unusable_slots(self) -> None:
        registry = SlotRegistry()
        local, _ = registry.register("http://localhost:11434", "Ollama", "local")
        openrouter, _ = registry.register("https://openrouter.ai/api/v1", "OpenRouter", "openrouter", "o1")
        registry.get(local).rate_limited_until = NOW + 30  # type: ignore[union-attr]
        picked = pick_failover_candidate(registry, "gemini", NOW)
        assert picked is not None
        assert picked.slot_id == openrouter

    def test_custom_priority(self) -> None:
        registry = SlotRegistry()
        registry.register("http://localhost:11434", "Ollama", "local")
        claude, _ = registry.register("https://api.anthropic.com/v1", "Claude", "anthropic", "a1")
        policy = PriorityFailoverPolicy(["anthropic", "local"])
        picked = policy.pick(registry, "gemini", NOW)
        assert picked is not None
        assert picked.slot_id == claude


# ═══════════════════════════════════════════════════════════════
#  Probe endpoints
# ═══════════════════════════════════════════════════════════════
class TestProbeRequest:
    def test_ollama(self) -> None:
        endpoint, headers = probe_request("http://localhost:11434/")
        assert endpoint == "http://localhost:11434/api/tags"
        assert headers == {}

    def test_openai_compatible(self) -> None:
        endpoint, headers = probe_request("https://api.groq.com/openai/v1", "gsk")
        assert endpoint == "https://api.groq.com/openai/v1/models"
        assert headers == {"Authorization": "Bearer gsk"}

    def test_gemini_key_in_query(self) -> None:
        endpoint, headers = probe_request("https://generativelanguage.googleapis.com/v1beta", "AIza")
        assert endpoint == "https://generativelanguage.googleapis.com/v1beta/models?key=AIza"
        assert "Authorization" not in headers
