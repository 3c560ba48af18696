"""Provider health checks: ping each provider in use before starting a run."""

import asyncio
import logging

from src.models import GenerationRequest
from src.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, provider: AIProvider, model: str) -> tuple[str, bool, str]:
    """Ping a single provider with ``model``. Returns (name, ok, error_message)."""
    request = GenerationRequest(agent_id="healthcheck", model=model, prompt=_PING_PROMPT)
    try:
        await asyncio.wait_for(provider.generate(request), timeout=_TIMEOUT_SEC)
        return name, True, ""
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", name, exc)
        return name, False, str(exc) or type(exc).__name__


async def run_health_checks(
    probes: dict[str, tuple[AIProvider, str]],
) -> dict[str, tuple[bool, str]]:
    """Ping all providers in parallel.

    Args:
        probes: provider name -> (provider, model to ping with).

    Returns:
        Dict mapping provider name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, p, m) for n, (p, m) in probes.items()))
    return {name: (ok, err) for name, ok, err in results}
