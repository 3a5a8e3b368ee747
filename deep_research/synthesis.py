"""Final synthesis: build the learnings digest, call synthesizer, return the report."""

import logging
from collections.abc import Sequence

from config.config_loader import PromptsConfig
from deep_research.models import Citation, FileData, ResearchUpdate, UpdateType
from deep_research.providers.base import AIProvider, Attachment, PromptPart, user_message

logger = logging.getLogger(__name__)


def _format_learnings(history: Sequence[ResearchUpdate]) -> str:
    """Join every read update into a single block for synthesis."""
    reads = [
        "\n".join(u.content) if isinstance(u.content, list) else u.content
        for u in history
        if u.type is UpdateType.READ
    ]
    return "\n\n---\n\n".join(reads) if reads else "No learnings were gathered."


def _format_searches(history: Sequence[ResearchUpdate]) -> str:
    searches = [
        ", ".join(u.content) if isinstance(u.content, list) else u.content
        for u in history
        if u.type is UpdateType.SEARCH
    ]
    return "\n".join(f"- {s}" for s in searches) if searches else "None."


def format_sources(citations: Sequence[Citation]) -> str:
    """Numbered source list, 1-indexed to match inline [n] references."""
    if not citations:
        return "No sources available."
    return "\n".join(f"[{i}] {c.title} ({c.url})" for i, c in enumerate(citations, start=1))


async def synthesize_report(
    query: str,
    clarified_context: str,
    history: Sequence[ResearchUpdate],
    citations: Sequence[Citation],
    provider: AIProvider,
    model: str,
    prompts: PromptsConfig,
    file_data: FileData | None = None,
) -> str:
    """Write the final markdown report from the full research history.

    Raises:
        ProviderError: If the synthesizer call fails.
        RuntimeError: If the synthesizer returns empty text.
    """
    prompt = prompts.synthesis.format(
        query=query,
        clarified_context=clarified_context,
        file_name=file_data.name if file_data else "None",
        search_history=_format_searches(history),
        learnings=_format_learnings(history),
        sources=format_sources(citations),
    )
    parts: list[PromptPart] = [prompt]
    if file_data is not None:
        parts.append(Attachment(mime_type=file_data.mime_type, data=file_data.data))

    logger.info("Running synthesis via %s (%s)", provider.name(), model)

    response = await provider.generate(model, user_message(*parts), temperature=0.5)

    if not response.text or not response.text.strip():
        raise RuntimeError(f"Synthesizer {provider.name()} returned empty content")

    return response.text
