"""Health probe — a cheap, bounded GET against a provider's model listing."""

from __future__ import annotations

import time

import httpx
import structlog

from provider_router.shared.providers.types import ProbeResult

logger = structlog.get_logger(__name__)


def probe_request(url: str, credential: str | None = None) -> tuple[str, dict[str, str]]:
    """Build the probe endpoint and headers for a base URL.

    OpenAI-compatible APIs list ``/models``; Gemini takes the key as a query
    parameter; anything else is assumed to be an Ollama server (``/api/tags``).
    """
    base = url.strip().rstrip("/")
    lowered = base.lower()
    is_gemini = "generativelanguage.googleapis.com" in lowered
    is_openai_compat = (
        "together" in lowered or "openrouter" in lowered or lowered.endswith("/v1")
    )

    headers: dict[str, str] = {}
    if is_gemini and credential:
        return f"{base}/models?key={credential}", headers

    endpoint = f"{base}/models" if is_openai_compat or is_gemini else f"{base}/api/tags"
    if credential and not is_gemini:
        headers["Authorization"] = f"Bearer {credential}"
    return endpoint, headers


async def probe(
    client: httpx.AsyncClient,
    url: str,
    credential: str | None = None,
    *,
    timeout_s: float = 4.0,
) -> ProbeResult:
    endpoint, headers = probe_request(url, credential)
    start = time.monotonic()
    try:
        response = await client.get(endpoint, headers=headers, timeout=timeout_s)
    except httpx.HTTPError as exc:
        latency_ms = (time.monotonic() - start) * 1000
        error_msg = f"{type(exc).__name__}: {exc}"
        logger.warning("provider_probe_failed", url=url, error=error_msg)
        return ProbeResult(ok=False, latency_ms=round(latency_ms, 1), error=error_msg)

    latency_ms = (time.monotonic() - start) * 1000
    ok = response.is_success
    log = logger.bind(url=url, status=response.status_code, latency_ms=round(latency_ms, 1))
    if ok:
        log.debug("provider_probe_ok")
    else:
        log.info("provider_probe_rejected")
    return ProbeResult(ok=ok, latency_ms=round(latency_ms, 1), status_code=response.status_code)
