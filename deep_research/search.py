"""Search execution: one web-search-augmented model call per query."""

import asyncio
import logging
from collections.abc import Iterable

from config.config_loader import PromptsConfig
from deep_research.models import Citation, SearchResult
from deep_research.providers.base import AIProvider, ModelResponse, ProviderError, user_message

logger = logging.getLogger(__name__)

_RETRY_BACKOFF_SEC = 1.0


def dedupe_citations(citations: Iterable[Citation]) -> list[Citation]:
    """Drop citations whose url was already seen. First title wins, order kept."""
    seen: dict[str, Citation] = {}
    for citation in citations:
        if citation.url not in seen:
            seen[citation.url] = citation
    return list(seen.values())


async def _generate_with_retry(
    provider: AIProvider,
    model: str,
    prompt: str,
    retries: int,
) -> ModelResponse:
    """Call the provider, retrying timeouts up to `retries` times with doubling backoff.

    Other errors propagate.
    """
    attempt = 0
    while True:
        try:
            return await provider.generate(model, user_message(prompt), temperature=0.5, web_search=True)
        except ProviderError as exc:
            if attempt >= retries or "timed out" not in str(exc).lower():
                raise
            attempt += 1
            logger.warning(
                "Search call on %s timed out, retry %d/%d",
                provider.name(), attempt, retries,
            )
            await asyncio.sleep(_RETRY_BACKOFF_SEC * 2 ** (attempt - 1))


async def execute_single_search(
    query: str,
    provider: AIProvider,
    model: str,
    prompts: PromptsConfig,
    retries: int = 0,
) -> SearchResult:
    """Run one query and return its tagged summary with deduplicated citations.

    Raises:
        ProviderError: If the search call fails.
    """
    response = await _generate_with_retry(provider, model, prompts.search.format(query=query), retries)

    citations: list[Citation] = []
    if provider.supports_citations:
        citations = dedupe_citations(response.citations)

    logger.info("Search %r: %d chars, %d citations", query, len(response.text), len(citations))
    return SearchResult(
        query=query,
        text=f'Summary for "{query}": {response.text}',
        citations=citations,
    )
