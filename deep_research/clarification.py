"""Clarification dialogue: turn a raw request into a refined research brief."""

import logging

from config.config_loader import PromptsConfig
from deep_research.models import ClarificationOutcome, ClarificationTurn, FileData
from deep_research.parsing import parse_json_object
from deep_research.providers.base import AIProvider, Attachment, Message, PromptPart

logger = logging.getLogger(__name__)

CLARIFICATION_FAILED = "Clarification process failed. Proceeding with original query."

_OUTCOME_TYPES = {"question", "summary"}


def fallback_outcome() -> ClarificationOutcome:
    return ClarificationOutcome(type="summary", content=CLARIFICATION_FAILED)


def _build_messages(history: list[ClarificationTurn], file_data: FileData | None) -> list[Message]:
    """Map the transcript to provider messages; the file rides the first user turn only."""
    messages: list[Message] = []
    for index, turn in enumerate(history):
        parts: list[PromptPart] = [turn.content]
        if index == 0 and turn.role == "user" and file_data is not None:
            parts.append(Attachment(mime_type=file_data.mime_type, data=file_data.data))
        messages.append(Message(role=turn.role, parts=parts))
    return messages


async def clarify_query(
    history: list[ClarificationTurn],
    provider: AIProvider,
    model: str,
    prompts: PromptsConfig,
    file_data: FileData | None = None,
) -> ClarificationOutcome:
    """Ask the model for the next clarifying question or the final summary.

    Malformed output is terminal: the fallback summary is returned so the
    caller proceeds with the original query. Provider errors propagate.
    """
    response = await provider.generate(
        model,
        _build_messages(history, file_data),
        system_instruction=prompts.clarification,
        temperature=0.5,
        web_search=True,
    )

    parsed = parse_json_object(response.text)
    if (
        parsed is None
        or parsed.get("type") not in _OUTCOME_TYPES
        or not isinstance(parsed.get("content"), str)
        or not parsed["content"].strip()
    ):
        logger.error("Failed to parse clarification response: %.500s", response.text)
        return fallback_outcome()

    outcome = ClarificationOutcome(type=parsed["type"], content=parsed["content"].strip())
    logger.info("Clarification turn %d -> %s", len(history), outcome.type)
    return outcome
