"""Provider families — URL detection, capability defaults and free models."""

from __future__ import annotations

from provider_router.shared.providers.types import (
    DEFAULT_FAMILY,
    LOCAL_FAMILY,
    ProviderCapabilities,
)

# First match wins; order matters for hosts that share substrings.
_URL_MARKERS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("localhost", "127.0.0.1"), LOCAL_FAMILY),
    (("generativelanguage.googleapis.com",), "gemini"),
    (("openai.com",), "openai"),
    (("openrouter.ai",), "openrouter"),
    (("together.xyz", "together.ai"), "together"),
    (("mistral.ai",), "mistral"),
    (("groq.com",), "groq"),
    (("anthropic.com", "claude.ai"), "anthropic"),
    (("api.ollama.com", "ollama.ai"), "ollama-cloud"),
)

FAMILY_CAPABILITIES: dict[str, ProviderCapabilities] = {
    LOCAL_FAMILY: ProviderCapabilities(vision=True, max_context_k=32, free_default=True),
    "gemini": ProviderCapabilities(vision=True, max_context_k=128, free_default=True),
    "openai": ProviderCapabilities(vision=True, max_context_k=128),
    "openrouter": ProviderCapabilities(vision=True, max_context_k=128, free_default=True),
    "together": ProviderCapabilities(vision=False, max_context_k=32),
    "mistral": ProviderCapabilities(vision=False, max_context_k=32),
    "groq": ProviderCapabilities(vision=False, max_context_k=32),
    "anthropic": ProviderCapabilities(vision=True, max_context_k=200),
    "ollama-cloud": ProviderCapabilities(vision=True, max_context_k=32),
}

FREE_MODELS: dict[str, tuple[str, ...]] = {
    "gemini": ("gemini-1.5-flash", "gemini-1.5-flash-8b", "gemini-2.0-flash"),
    "openrouter": (),
    "groq": ("llama-3.1-8b-instant", "llama3-8b-8192", "mixtral-8x7b-32768"),
    LOCAL_FAMILY: (),
}


def detect_provider_family(url: str) -> str:
    """Guess the provider family from an endpoint URL."""
    u = (url or "").lower()
    for markers, family in _URL_MARKERS:
        if any(m in u for m in markers):
            return family
    return DEFAULT_FAMILY


def normalize_family(family: str | None, url: str = "") -> str:
    if family is None or not family.strip():
        return detect_provider_family(url)
    return family.strip().lower()


def capabilities_for(family: str) -> ProviderCapabilities:
    return FAMILY_CAPABILITIES.get(family, FAMILY_CAPABILITIES["ollama-cloud"])


def best_free_model(family: str) -> str | None:
    models = FREE_MODELS.get(family)
    if not models:
        return None
    return models[0]
