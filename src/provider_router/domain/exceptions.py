"""Router exception hierarchy.

All exceptions inherit from ``DomainError`` so callers can catch the entire
family in one clause while still discriminating on subclass.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for all router errors."""

    def __init__(self, message: str, *, code: str = "DOMAIN_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# ── Validation ───────────────────────────────────────────────
class ValidationError(DomainError):
    """Input failed validation rules."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="VALIDATION_ERROR")


# ── Slots ────────────────────────────────────────────────────
class SlotNotFoundError(DomainError):
    def __init__(self, slot: str) -> None:
        super().__init__(f"Provider slot {slot!r} is not registered", code="SLOT_NOT_FOUND")


class LocalProviderMissingError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            "No local provider is registered. Start Ollama on "
            "http://localhost:11434 and register it before forcing local mode.",
            code="LOCAL_PROVIDER_MISSING",
        )


# ── Availability ─────────────────────────────────────────────
class ProvidersUnavailableError(DomainError):
    """No provider could serve a request before its deadline."""

    def __init__(self, message: str = "All providers unavailable, retry later") -> None:
        super().__init__(message, code="PROVIDERS_UNAVAILABLE")
