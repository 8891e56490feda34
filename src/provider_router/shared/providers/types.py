"""Core types for the provider router."""

from __future__ import annotations

import enum
import hashlib
from dataclasses import dataclass, field


class TaskType(str, enum.Enum):
    """Class of work a caller wants a provider for."""

    CHAT = "chat"
    CODE = "code"
    VISION = "vision"
    COMMIT = "commit"
    AGENT = "agent"


class RateLimitTier(str, enum.Enum):
    """Severity of a rate-limit cooldown."""

    SESSION = "session"
    QUOTA = "quota"
    SUSPENDED = "suspended"


LOCAL_FAMILY = "local"
DEFAULT_FAMILY = "cloud"


@dataclass(frozen=True)
class ProviderCapabilities:
    """Static capabilities of a provider family.

    Attributes:
        vision:        Accepts image input.
        streaming:     Supports streamed responses.
        max_context_k: Context window size class, in thousands of tokens.
        free_default:  Usable on a free tier out of the box.
    """

    vision: bool = False
    streaming: bool = True
    max_context_k: int = 32
    free_default: bool = False


def normalize_url(url: str) -> str:
    return (url or "").strip().rstrip("/").lower()


def fingerprint(credential: str | None) -> str:
    """Short, non-reversible fingerprint of a credential."""
    if not credential:
        return ""
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()[:12]


@dataclass(frozen=True, order=True)
class SlotId:
    """Identity of a slot: normalized endpoint URL + credential fingerprint."""

    url: str
    key_fingerprint: str = ""

    @classmethod
    def of(cls, url: str, credential: str | None = None) -> SlotId:
        return cls(normalize_url(url), fingerprint(credential))

    @property
    def key(self) -> str:
        """Flat string form, safe to expose in URLs and logs."""
        digest = hashlib.sha256(f"{self.url}|{self.key_fingerprint}".encode()).hexdigest()
        return digest[:16]

    def __str__(self) -> str:
        if self.key_fingerprint:
            return f"{self.url}#{self.key_fingerprint[:6]}"
        return self.url


@dataclass
class SlotHealth:
    """Mutable health record of one registered slot.

    Mutated only by the router; observers receive ``SlotSnapshot`` copies.
    """

    slot_id: SlotId
    url: str
    display_name: str
    family: str
    capabilities: ProviderCapabilities
    available: bool = True
    suspended: bool = False
    rate_limited_until: float = 0.0
    rate_limit_tier: RateLimitTier = RateLimitTier.SESSION
    session_hits: int = 0
    latency_ms: float = 0.0
    error_rate: float = 0.0
    total_requests: int = 0
    total_errors: int = 0
    total_tokens: int = 0
    last_checked: float = 0.0

    def is_cooling(self, now: float) -> bool:
        return self.rate_limited_until > now

    def is_selectable(self, now: float) -> bool:
        return self.available and not self.suspended and not self.is_cooling(now)

    def snapshot(self) -> SlotSnapshot:
        return SlotSnapshot(
            slot_id=self.slot_id,
            url=self.url,
            display_name=self.display_name,
            family=self.family,
            capabilities=self.capabilities,
            available=self.available,
            suspended=self.suspended,
            rate_limited_until=self.rate_limited_until,
            rate_limit_tier=self.rate_limit_tier,
            session_hits=self.session_hits,
            latency_ms=self.latency_ms,
            error_rate=self.error_rate,
            total_requests=self.total_requests,
            total_errors=self.total_errors,
            total_tokens=self.total_tokens,
            last_checked=self.last_checked,
        )


@dataclass(frozen=True)
class SlotSnapshot:
    """Read-only, point-in-time copy of a ``SlotHealth``."""

    slot_id: SlotId
    url: str
    display_name: str
    family: str
    capabilities: ProviderCapabilities
    available: bool
    suspended: bool
    rate_limited_until: float
    rate_limit_tier: RateLimitTier
    session_hits: int
    latency_ms: float
    error_rate: float
    total_requests: int
    total_errors: int
    total_tokens: int
    last_checked: float


@dataclass(frozen=True)
class SelectedSlot:
    """Answer to a selection request."""

    slot_id: SlotId
    url: str
    display_name: str
    family: str
    capabilities: ProviderCapabilities
    failover: bool = False
    queued: bool = False


@dataclass(frozen=True)
class RouterStats:
    """Snapshot of the registry + queue, republished after every mutation."""

    slots: tuple[SlotSnapshot, ...] = ()
    total_requests: int = 0
    total_failovers: int = 0
    total_suspensions: int = 0
    queue_length: int = 0
    forced_local: bool = False
    last_updated: float = 0.0

    @property
    def available_count(self) -> int:
        return sum(1 for s in self.slots if s.available and not s.suspended)

    @property
    def suspended_count(self) -> int:
        return sum(1 for s in self.slots if s.suspended)


@dataclass(frozen=True)
class SuspendedSlot:
    """A suspended slot together with its remaining cooldown."""

    slot: SlotSnapshot
    remaining_s: float


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    latency_ms: float
    status_code: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class ForceLocalResult:
    active: bool
    message: str
    local_slot: SlotId | None = field(default=None)
