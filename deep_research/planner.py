"""Deliberative planner: two personas debate the next research step.

One invocation is one planning session. Alpha (Strategist) opens, then the
acting persona flips after every turn that does not end the session. The
session ends with either a batch of search queries or a finish decision.
Cycle counts come from the shared update history, never from local state,
so each search cycle re-enters the planner with a fresh debate transcript.
"""

import asyncio
import logging
from collections.abc import Sequence

from config.config_loader import PromptsConfig
from deep_research.models import (
    AgentPersona,
    FileData,
    PlannerDecision,
    PlannerTurn,
    ResearchUpdate,
    UpdateType,
)
from deep_research.parsing import parse_json_object
from deep_research.progress import CancellationToken, UpdateLog
from deep_research.providers.base import AIProvider, Attachment, PromptPart, user_message

logger = logging.getLogger(__name__)

CONTINUE_DEBATE = "continue_debate"
SEARCH = "search"
FINISH = "finish"

_OPENING_LINE = "You are Agent Alpha, starting the conversation. Propose the initial strategy."
_FIRST_TURN_RULE = (
    "**Critical Rule for Agent Alpha (First Turn):** As this is the first turn of the debate, "
    "propose an initial strategy. Your action MUST be 'continue_debate'."
)


def summarize_history(history: Sequence[ResearchUpdate]) -> tuple[str, str, int]:
    """Return (executed searches, learnings, search cycle count) from the update log."""
    searches = [u for u in history if u.type is UpdateType.SEARCH]
    search_text = "; ".join(
        ", ".join(u.content) if isinstance(u.content, list) else u.content
        for u in searches
    )
    read_text = "\n---\n".join(
        "\n".join(u.content) if isinstance(u.content, list) else u.content
        for u in history
        if u.type is UpdateType.READ
    )
    return search_text, read_text, len(searches)


def parse_planner_turn(raw: dict | None) -> PlannerTurn | None:
    """Validate the planner wire contract. None means a malformed response."""
    if raw is None:
        return None
    thought = raw.get("thought")
    action = raw.get("action")
    if not isinstance(thought, str) or not thought.strip():
        return None
    if not isinstance(action, str) or not action.strip():
        return None

    queries_raw = raw.get("queries") or []
    if isinstance(queries_raw, str):
        queries_raw = [queries_raw]
    queries = [q.strip() for q in queries_raw if isinstance(q, str) and q.strip()]

    reason = raw.get("finish_reason")
    return PlannerTurn(
        thought=thought.strip(),
        action=action.strip(),
        queries=queries,
        finish_reason=reason if isinstance(reason, str) and reason.strip() else None,
    )


def _build_prompt(
    prompts: PromptsConfig,
    persona: AgentPersona,
    query: str,
    clarified_context: str,
    file_data: FileData | None,
    search_cycles: int,
    search_history: str,
    read_history: str,
    conversation: list[tuple[AgentPersona, str]],
    min_search_cycles: int,
) -> str:
    conversation_text = "\n".join(f"{p.value}: {thought}" for p, thought in conversation)
    return prompts.planner.format(
        persona=persona.value,
        persona_title=persona.title,
        query=query,
        clarified_context=clarified_context,
        file_name=file_data.name if file_data else "None",
        search_cycles=search_cycles,
        search_history=search_history or "None yet.",
        read_history=read_history or "No learnings yet.",
        conversation=conversation_text or _OPENING_LINE,
        first_turn_rule=_FIRST_TURN_RULE if not conversation else "",
        min_search_cycles=min_search_cycles,
    )


async def run_planner(
    query: str,
    history: Sequence[ResearchUpdate],
    log: UpdateLog,
    token: CancellationToken,
    provider: AIProvider,
    model: str,
    prompts: PromptsConfig,
    clarified_context: str,
    file_data: FileData | None = None,
    min_search_cycles: int = 7,
    pacing_delay_sec: float = 0.4,
) -> PlannerDecision:
    """Run one planning session until the personas search or finish.

    Args:
        query: The user's original query.
        history: Updates emitted so far in this research run.
        log: Shared update log; every thought is emitted through it.
        token: Cancellation signal checked around every suspension point.
        provider: Backend used for planner calls.
        model: Planner model identifier.
        prompts: Prompt templates from config.
        clarified_context: Refined research brief.
        file_data: Optional attachment sent with every turn.
        min_search_cycles: Finish requests below this cycle count are rejected.
        pacing_delay_sec: Pause after each emitted thought.

    Returns:
        PlannerDecision carrying either search queries or a finish reason.

    Raises:
        ResearchCancelled: If the token is cancelled.
        ProviderError: If a planner call fails.
    """
    search_history, read_history, search_cycles = summarize_history(history)
    conversation: list[tuple[AgentPersona, str]] = []
    persona = AgentPersona.ALPHA

    while True:
        token.raise_if_cancelled()
        first_turn = not conversation
        if first_turn:
            persona = AgentPersona.ALPHA

        prompt = _build_prompt(
            prompts, persona, query, clarified_context, file_data,
            search_cycles, search_history, read_history, conversation, min_search_cycles,
        )
        parts: list[PromptPart] = [prompt]
        if file_data is not None:
            parts.append(Attachment(mime_type=file_data.mime_type, data=file_data.data))

        response = await token.guard(
            provider.generate(model, user_message(*parts), temperature=0.7, json_output=True)
        )

        turn = parse_planner_turn(parse_json_object(response.text))
        if turn is None:
            logger.error("Agent %s returned a malformed planner response: %.500s", persona.value, response.text)
            log.emit(UpdateType.THOUGHT, f"Agent {persona.value} failed to respond. Finishing research.")
            return PlannerDecision(
                search_queries=[],
                should_finish=True,
                finish_reason=f"Agent {persona.value} failed to generate a valid action.",
            )

        log.emit(UpdateType.THOUGHT, turn.thought, persona=persona)
        conversation.append((persona, turn.thought))
        await token.guard(asyncio.sleep(pacing_delay_sec))

        action = turn.action
        # The cycle floor applies to every turn, the opening one included
        if action == FINISH and search_cycles < min_search_cycles:
            violation = (
                f"Rule violation: Cannot finish before {min_search_cycles} search cycles. "
                f"Continuing debate. My previous thought was: {turn.thought}"
            )
            log.emit(UpdateType.THOUGHT, violation, persona=persona)
            conversation.append((persona, violation))
            logger.info("Rejected finish at %d/%d search cycles", search_cycles, min_search_cycles)
            persona = persona.other()
            continue

        if first_turn and action != CONTINUE_DEBATE:
            logger.info("Agent Alpha chose '%s' on the opening turn; continuing debate", action)
            action = CONTINUE_DEBATE

        if action == FINISH:
            logger.info("Agent %s finished research after %d search cycles", persona.value, search_cycles)
            return PlannerDecision(
                search_queries=[],
                should_finish=True,
                finish_reason=turn.finish_reason or f"{persona.value} decided to finish.",
            )

        if action == SEARCH and turn.queries:
            logger.info("Agent %s proposed %d queries", persona.value, len(turn.queries))
            return PlannerDecision(search_queries=turn.queries, should_finish=False)

        persona = persona.other()
