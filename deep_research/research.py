"""Iterative research loop: plan, search, accumulate learnings, then synthesize."""

import asyncio
import logging
from collections.abc import Callable

from config.config_loader import DefaultsConfig, PromptsConfig
from deep_research.models import (
    Citation,
    FileData,
    ResearchResult,
    ResearchUpdate,
    RoleModels,
    SearchResult,
    UpdateType,
)
from deep_research.planner import run_planner
from deep_research.progress import CancellationToken, UpdateLog
from deep_research.providers.base import AIProvider
from deep_research.search import dedupe_citations, execute_single_search
from deep_research.synthesis import synthesize_report

logger = logging.getLogger(__name__)


async def _run_search_batch(
    queries: list[str],
    provider: AIProvider,
    model: str,
    prompts: PromptsConfig,
    token: CancellationToken,
    concurrency: int,
    retries: int,
) -> list[SearchResult]:
    """Run independent queries concurrently; results come back in query order.

    The first failure cancels the rest of the batch and propagates.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run_one(query: str) -> SearchResult:
        async with semaphore:
            return await token.guard(execute_single_search(query, provider, model, prompts, retries=retries))

    tasks = [asyncio.ensure_future(run_one(q)) for q in queries]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.wait(tasks)
        raise


async def run_iterative_research(
    query: str,
    provider: AIProvider,
    roles: RoleModels,
    defaults: DefaultsConfig,
    prompts: PromptsConfig,
    clarified_context: str,
    file_data: FileData | None = None,
    log: UpdateLog | None = None,
    token: CancellationToken | None = None,
    on_update: Callable[[ResearchUpdate], None] | None = None,
) -> ResearchResult:
    """Alternate planner and search batches until the planner finishes, then synthesize.

    Args:
        query: The user's original query.
        provider: Backend used for every role.
        roles: Model identifiers per role.
        defaults: Cycle floor/ceiling, pacing, concurrency and retry settings.
        prompts: Prompt templates from config.
        clarified_context: Refined research brief from clarification.
        file_data: Optional attachment.
        log: Update log to append to; a new one is created when omitted.
        token: Cancellation signal; a new one is created when omitted.
        on_update: Observer for a newly created log.

    Returns:
        ResearchResult with the report and deduplicated citations.

    Raises:
        ResearchCancelled: If the token is cancelled; synthesis never runs.
        ProviderError: If any planner, search or synthesis call fails.
    """
    log = log if log is not None else UpdateLog(on_update=on_update)
    token = token if token is not None else CancellationToken()
    citations: list[Citation] = []

    while True:
        token.raise_if_cancelled()

        cycles = len(log.of_type(UpdateType.SEARCH))
        if defaults.max_search_cycles is not None and cycles >= defaults.max_search_cycles:
            reason = f"Reached the maximum of {defaults.max_search_cycles} search cycles."
            logger.warning(reason)
            log.emit(UpdateType.FINISH, reason)
            break

        decision = await run_planner(
            query=query,
            history=log.updates,
            log=log,
            token=token,
            provider=provider,
            model=roles.planner,
            prompts=prompts,
            clarified_context=clarified_context,
            file_data=file_data,
            min_search_cycles=defaults.min_search_cycles,
            pacing_delay_sec=defaults.pacing_delay_sec,
        )
        token.raise_if_cancelled()

        if decision.should_finish or not decision.search_queries:
            log.emit(UpdateType.FINISH, decision.finish_reason or "Research complete.")
            break

        for search_query in decision.search_queries:
            log.emit(UpdateType.SEARCH, search_query)

        results = await _run_search_batch(
            decision.search_queries,
            provider,
            roles.searcher,
            prompts,
            token,
            defaults.search_concurrency,
            defaults.search_retries,
        )
        token.raise_if_cancelled()

        for result in results:
            log.emit(UpdateType.READ, result.text)
            citations = dedupe_citations([*citations, *result.citations])

        logger.info(
            "Search batch done: %d queries, %d total cycles, %d citations",
            len(results), len(log.of_type(UpdateType.SEARCH)), len(citations),
        )

    token.raise_if_cancelled()
    report = await token.guard(
        synthesize_report(
            query=query,
            clarified_context=clarified_context,
            history=log.updates,
            citations=citations,
            provider=provider,
            model=roles.synthesizer,
            prompts=prompts,
            file_data=file_data,
        )
    )
    return ResearchResult(report=report, citations=citations)
