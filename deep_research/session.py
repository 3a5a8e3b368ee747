"""Research session: one owned state object driving idle -> clarifying -> researching -> complete."""

import logging
import time
from collections.abc import Callable

from config.config_loader import BASE_MODE, AppConfig, resolve_role_models
from deep_research.clarification import clarify_query, fallback_outcome
from deep_research.models import (
    ClarificationOutcome,
    ClarificationTurn,
    FileData,
    FinalResearchData,
    ResearchUpdate,
    RoleModels,
    SessionState,
)
from deep_research.progress import CancellationToken, ResearchCancelled, UpdateLog
from deep_research.providers.base import AIProvider
from deep_research.research import run_iterative_research

logger = logging.getLogger(__name__)

CANCELLED_REPORT = "The research process was cancelled."
FAILED_REPORT = "An error occurred during the research process."

_TRANSITIONS: dict[tuple[SessionState, str], SessionState] = {
    (SessionState.IDLE, "start_clarification"): SessionState.CLARIFYING,
    (SessionState.IDLE, "brief_provided"): SessionState.RESEARCHING,
    (SessionState.CLARIFYING, "brief_ready"): SessionState.RESEARCHING,
    (SessionState.RESEARCHING, "research_finished"): SessionState.COMPLETE,
}


class InvalidTransitionError(Exception):
    """Raised when an event is not allowed in the session's current state."""

    def __init__(self, state: SessionState, event: str) -> None:
        self.state = state
        self.event = event
        super().__init__(f"Cannot '{event}' while session is {state.value}")


class ResearchSession:
    """Owns all mutable state of one research session.

    Clarification is externally driven: each call to start_clarification or
    submit_answer performs one model round-trip and returns the outcome.
    """

    def __init__(
        self,
        config: AppConfig,
        provider: AIProvider,
        mode: str = BASE_MODE,
        custom_models: dict[str, str] | None = None,
        on_update: Callable[[ResearchUpdate], None] | None = None,
    ) -> None:
        self._config = config
        self._on_update = on_update
        self._provider = provider
        self.mode = mode
        self.custom_models: dict[str, str] = dict(custom_models or {})
        self.state = SessionState.IDLE
        self.query = ""
        self.file_data: FileData | None = None
        self.clarification_history: list[ClarificationTurn] = []
        self.clarified_context = ""
        self.log = UpdateLog(on_update=on_update)
        self.final_data: FinalResearchData | None = None
        self._token: CancellationToken | None = None
        self._run_id = 0

    def _transition(self, event: str) -> None:
        target = _TRANSITIONS.get((self.state, event))
        if target is None:
            raise InvalidTransitionError(self.state, event)
        logger.debug("Session %s -> %s (%s)", self.state.value, target.value, event)
        self.state = target

    def _require_idle(self, event: str) -> None:
        if self.state is not SessionState.IDLE:
            raise InvalidTransitionError(self.state, event)

    @property
    def provider(self) -> AIProvider:
        return self._provider

    @property
    def updates(self) -> tuple[ResearchUpdate, ...]:
        return self.log.updates

    def attach_file(self, file_data: FileData) -> None:
        self._require_idle("attach_file")
        self.file_data = file_data

    def remove_file(self) -> None:
        self._require_idle("remove_file")
        self.file_data = None

    def set_mode(self, mode: str, custom_models: dict[str, str] | None = None) -> None:
        self._require_idle("set_mode")
        self.mode = mode
        if custom_models is not None:
            self.custom_models = dict(custom_models)

    def _roles(self) -> RoleModels:
        return resolve_role_models(self._config, self._provider.name(), self.mode, self.custom_models)

    async def start_clarification(self, query: str) -> ClarificationOutcome:
        if not query.strip():
            raise ValueError("Query must not be empty")
        self._transition("start_clarification")
        self.query = query.strip()
        initial = self.query
        if self.file_data is not None:
            initial = f"{self.query}\n\n[File attached: {self.file_data.name}]"
        self.clarification_history = [ClarificationTurn(role="user", content=initial)]
        return await self._clarify()

    async def submit_answer(self, answer: str) -> ClarificationOutcome:
        if self.state is not SessionState.CLARIFYING:
            raise InvalidTransitionError(self.state, "submit_answer")
        self.clarification_history.append(ClarificationTurn(role="user", content=answer))
        return await self._clarify()

    def start_with_brief(self, query: str, brief: str | None = None) -> None:
        """Skip the dialogue; the brief defaults to the query itself."""
        if not query.strip():
            raise ValueError("Query must not be empty")
        self._transition("brief_provided")
        self.query = query.strip()
        self.clarified_context = (brief or "").strip() or self.query

    async def _clarify(self) -> ClarificationOutcome:
        try:
            outcome = await clarify_query(
                self.clarification_history,
                self._provider,
                self._roles().clarification,
                self._config.prompts,
                self.file_data,
            )
        except Exception as exc:
            logger.error("Clarification step failed: %s", exc)
            outcome = fallback_outcome()

        if outcome.is_question:
            self.clarification_history.append(ClarificationTurn(role="model", content=outcome.content))
        else:
            self.clarified_context = outcome.content
            self._transition("brief_ready")
        return outcome

    async def run_research(self) -> FinalResearchData:
        """Run the research loop to completion.

        Always leaves the session complete with either the real report or a
        placeholder, and records elapsed time regardless of outcome.
        """
        if self.state is not SessionState.RESEARCHING:
            raise InvalidTransitionError(self.state, "run_research")

        self._run_id += 1
        run_id = self._run_id
        token = self._token = CancellationToken()
        start = time.monotonic()
        try:
            result = await run_iterative_research(
                query=self.query,
                provider=self._provider,
                roles=self._roles(),
                defaults=self._config.defaults,
                prompts=self._config.prompts,
                clarified_context=self.clarified_context,
                file_data=self.file_data,
                log=self.log,
                token=token,
            )
            report, citations = result.report, result.citations
        except ResearchCancelled:
            logger.info("Research cancelled after %d updates", len(self.log))
            report, citations = CANCELLED_REPORT, []
        except Exception as exc:
            logger.exception("Research failed: %s", exc)
            report, citations = FAILED_REPORT, []

        final = FinalResearchData(
            report=report,
            citations=citations,
            research_time_ms=int((time.monotonic() - start) * 1000),
        )
        # A reset during the run already moved the session on; only the latest run may finish it
        if self._run_id == run_id:
            self._transition("research_finished")
            self.final_data = final
        return final

    def stop(self) -> None:
        if self._token is not None:
            self._token.cancel()

    def reset(self) -> None:
        self.stop()
        self._token = None
        self._run_id += 1
        self.state = SessionState.IDLE
        self.query = ""
        self.mode = BASE_MODE
        self.custom_models = {}
        self.file_data = None
        self.clarification_history = []
        self.clarified_context = ""
        self.log = UpdateLog(on_update=self._on_update)
        self.final_data = None
