"""Provider health checks: ping every configured role model before researching."""

import asyncio
import logging

from deep_research.models import RoleModels
from deep_research.providers.base import AIProvider, user_message

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def _check_one(provider: AIProvider, model: str) -> tuple[str, bool, str]:
    """Ping a single model. Returns (model, ok, error_message)."""
    try:
        await asyncio.wait_for(
            provider.generate(model, user_message(_PING_PROMPT), temperature=0.0),
            timeout=_TIMEOUT_SEC,
        )
        return model, True, ""
    except Exception as exc:
        return model, False, str(exc) or type(exc).__name__


async def run_health_checks(
    provider: AIProvider,
    roles: RoleModels,
) -> dict[str, tuple[bool, str]]:
    """Ping each distinct role model in parallel.

    Returns:
        Dict mapping model identifier -> (ok, error_message).
        error_message is "" when ok is True.
    """
    models = list(dict.fromkeys([roles.clarification, roles.planner, roles.searcher, roles.synthesizer]))
    results = await asyncio.gather(*(_check_one(provider, m) for m in models))
    return {model: (ok, err) for model, ok, err in results}
