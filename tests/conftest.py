"""Shared test fixtures."""

from __future__ import annotations

import pytest

from provider_router.config import Settings, get_settings
from provider_router.shared.providers.router import ProviderRouter


class FakeClock:
    """Manually advanced wall clock (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return get_settings(queue_timeout_s=0.2, drain_interval_s=0.05)


@pytest.fixture
def router(settings: Settings, clock: FakeClock) -> ProviderRouter:
    return ProviderRouter(settings, clock=clock)
