"""Quota profiles — classify a rate-limit cooldown into a severity tier.

Each provider family has its own idea of what a long cooldown means: a
five-minute 429 from Gemini is a per-minute throttle, a six-hour one from
Groq is the daily budget running dry.  Profiles encode those boundaries:

    cooldown <  session_threshold_s     → SESSION
    cooldown <  suspension_threshold_s  → QUOTA
    otherwise                           → SUSPENDED
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime

import structlog

from provider_router.shared.providers.types import LOCAL_FAMILY, RateLimitTier

logger = structlog.get_logger(__name__)

_MINUTE = 60.0
_HOUR = 60 * _MINUTE


@dataclass(frozen=True)
class QuotaProfile:
    """Immutable per-family cooldown policy.

    Attributes:
        session_threshold_s:    Cooldowns shorter than this are session blips.
        suspension_threshold_s: Cooldowns at or above this suspend the slot.
        description:            Human-readable name of the exhausted quota.
    """

    session_threshold_s: float
    suspension_threshold_s: float
    description: str

    def classify(self, cooldown_s: float) -> RateLimitTier:
        if cooldown_s < self.session_threshold_s:
            return RateLimitTier.SESSION
        if cooldown_s < self.suspension_threshold_s:
            return RateLimitTier.QUOTA
        return RateLimitTier.SUSPENDED


DEFAULT_PROFILE = QuotaProfile(
    session_threshold_s=5 * _MINUTE,
    suspension_threshold_s=24 * _HOUR,
    description="provider usage quota",
)

QUOTA_PROFILES: dict[str, QuotaProfile] = {
    # Local inference has no remote quota, every 429 is a busy server.
    LOCAL_FAMILY: QuotaProfile(math.inf, math.inf, "local server capacity"),
    "gemini": QuotaProfile(5 * _MINUTE, 12 * _HOUR, "Gemini free-tier daily request limit (RPD)"),
    "groq": QuotaProfile(5 * _MINUTE, 6 * _HOUR, "Groq daily token/request limit"),
    "openrouter": QuotaProfile(5 * _MINUTE, 12 * _HOUR, "OpenRouter free-model daily request cap"),
    "mistral": QuotaProfile(5 * _MINUTE, 24 * _HOUR, "Mistral monthly token budget"),
    "together": QuotaProfile(5 * _MINUTE, 24 * _HOUR, "Together AI credit balance"),
    "openai": QuotaProfile(10 * _MINUTE, 24 * _HOUR, "OpenAI usage tier limit"),
    "anthropic": QuotaProfile(10 * _MINUTE, 24 * _HOUR, "Anthropic usage tier limit"),
    "ollama-cloud": QuotaProfile(5 * _MINUTE, 24 * _HOUR, "Ollama Cloud hourly/daily usage limit"),
}


def profile_for(family: str) -> QuotaProfile:
    return QUOTA_PROFILES.get(family, DEFAULT_PROFILE)


def classify_cooldown(family: str, cooldown_s: float) -> RateLimitTier:
    return profile_for(family).classify(cooldown_s)


def parse_retry_after(value: str | float | int | None, *, now: float | None = None) -> float | None:
    """Parse a ``Retry-After`` header value into seconds.

    Accepts a delta in seconds or an HTTP date.  Returns ``None`` when the
    value cannot be interpreted; dates in the past yield ``0.0``.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return max(0.0, float(value))

    text = value.strip()
    if not text:
        return None
    try:
        return max(0.0, float(text))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        logger.debug("retry_after_unparseable", value=text)
        return None
    current = time.time() if now is None else now
    return max(0.0, when.timestamp() - current)
