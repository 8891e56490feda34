"""Dependency wiring — builds the router and hands it to route handlers.

The router is constructed explicitly and owned by the application object
(``app.state.router``); there is no module-level router instance.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from functools import lru_cache
from typing import Any

from fastapi import Request

from provider_router.config import Settings, get_settings
from provider_router.shared.providers.router import ProviderRouter


# ── Settings ─────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_cached_settings() -> Settings:
    return get_settings()


# ── Router ───────────────────────────────────────────────────
def build_router(
    settings: Settings | None = None,
    slots: Iterable[Mapping[str, Any]] = (),
    **router_kwargs: Any,
) -> ProviderRouter:
    """Create a router and register the persisted slot configuration.

    Each slot mapping carries ``url`` and optionally ``display_name``,
    ``family`` and ``credential``.
    """
    router = ProviderRouter(settings or get_cached_settings(), **router_kwargs)
    for slot in slots:
        router.register(
            slot["url"],
            slot.get("display_name"),
            slot.get("family"),
            slot.get("credential"),
        )
    return router


def get_router(request: Request) -> ProviderRouter:
    return request.app.state.router  # type: ignore[no-any-return]
