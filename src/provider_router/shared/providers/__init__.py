"""Provider router — slot selection, health tracking, quota-aware failover.

Decides which (endpoint, credential) slot serves each outbound LLM
request, queues callers when nothing is usable, and reports suspensions.
"""

from provider_router.shared.providers.types import (
    ProviderCapabilities,
    RateLimitTier,
    RouterStats,
    SelectedSlot,
    SlotId,
    SlotSnapshot,
    TaskType,
)
from provider_router.shared.providers.families import detect_provider_family
from provider_router.shared.providers.failover import (
    FailoverPolicy,
    PriorityFailoverPolicy,
    pick_failover_candidate,
)
from provider_router.shared.providers.quota import QuotaProfile, parse_retry_after, profile_for
from provider_router.shared.providers.registry import SlotRegistry
from provider_router.shared.providers.router import ProviderRouter

__all__ = [
    "FailoverPolicy",
    "PriorityFailoverPolicy",
    "ProviderCapabilities",
    "ProviderRouter",
    "QuotaProfile",
    "RateLimitTier",
    "RouterStats",
    "SelectedSlot",
    "SlotId",
    "SlotRegistry",
    "SlotSnapshot",
    "TaskType",
    "detect_provider_family",
    "parse_retry_after",
    "pick_failover_candidate",
    "profile_for",
]
