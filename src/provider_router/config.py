"""Provider router — configuration."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralised, validated configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    app_name: str = "provider-router"
    log_level: str = "INFO"
    json_logs: bool = False

    # ── Pending queue ────────────────────────────────────────
    queue_timeout_s: float = 120.0
    drain_interval_s: float = 5.0

    # ── Health scoring ───────────────────────────────────────
    default_cooldown_s: float = 60.0
    error_rate_step: float = 0.2
    error_rate_decay: float = 0.05
    error_rate_forgiveness: float = 0.3
    circuit_threshold: float = 0.6
    latency_ema_weight: float = 0.2

    # ── Failover ─────────────────────────────────────────────
    failover_priority: str = "local,openrouter,groq,mistral,together,openai,anthropic,ollama-cloud"

    # ── Probes ───────────────────────────────────────────────
    probe_timeout_s: float = 4.0

    # ── Derived helpers ──────────────────────────────────────
    @property
    def failover_order(self) -> tuple[str, ...]:
        return tuple(f.strip().lower() for f in self.failover_priority.split(",") if f.strip())

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator(
        "error_rate_step",
        "error_rate_decay",
        "error_rate_forgiveness",
        "circuit_threshold",
        "latency_ema_weight",
    )
    @classmethod
    def _unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("must be between 0 and 1")
        return v

    @field_validator("queue_timeout_s", "drain_interval_s", "probe_timeout_s")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("default_cooldown_s")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v


def get_settings(**overrides: Any) -> Settings:
    """Factory that allows test-time overrides."""
    return Settings(**overrides)
