"""Shared pytest fixtures."""

import json
from collections.abc import Sequence
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ProviderConfig, PromptsConfig
from deep_research.models import Citation, FileData, RoleModels
from deep_research.providers.base import AIProvider, Attachment, Message, ModelResponse

SEARCH_PREFIX = "Search: "


def planner_json(
    thought: str,
    action: str,
    queries: list[str] | None = None,
    finish_reason: str | None = None,
) -> str:
    """Render a planner turn the way a well-behaved model would."""
    payload: dict = {"thought": thought, "action": action}
    if queries is not None:
        payload["queries"] = queries
    if finish_reason is not None:
        payload["finish_reason"] = finish_reason
    return json.dumps(payload)


def message_text(messages: Sequence[Message]) -> str:
    return "\n".join(p for m in messages for p in m.parts if isinstance(p, str))


def message_attachments(messages: Sequence[Message]) -> list[Attachment]:
    return [p for m in messages for p in m.parts if isinstance(p, Attachment)]


class MockProvider(AIProvider):
    """Test double AIProvider answering from a queue of scripted replies.

    Queue items may be text, a ModelResponse, or an exception to raise.
    Every call is recorded in `calls`.
    """

    def __init__(
        self,
        provider_name: str = "mock",
        responses: list | None = None,
        supports_citations: bool = False,
    ) -> None:
        self._name = provider_name
        self._responses = list(responses or [])
        self.supports_citations = supports_citations
        self.calls: list[dict] = []
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(side_effect=self._reply)  # type: ignore[assignment]

    def name(self) -> str:
        return self._name

    def _wrap(self, model: str, item) -> ModelResponse:
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, ModelResponse):
            return item
        return ModelResponse(provider=self._name, model=model, text=item, latency_sec=0.01)

    async def _reply(self, model: str, messages: Sequence[Message], **kwargs) -> ModelResponse:
        self.calls.append({"model": model, "messages": list(messages), **kwargs})
        if not self._responses:
            return self._wrap(model, "Mock response")
        return self._wrap(model, self._responses.pop(0))

    async def generate(self, model, messages, **kwargs) -> ModelResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return ModelResponse(provider=self._name, model=model, text="Mock response")


class ScriptedResearchProvider(MockProvider):
    """Routes calls by role: planner (json_output), clarification (system
    instruction + web search), search (web search), synthesis (everything else).
    """

    def __init__(
        self,
        planner: list | None = None,
        clarification: list | None = None,
        search_citations: dict[str, list[Citation]] | None = None,
        search_errors: dict[str, BaseException] | None = None,
        synthesis: str = "# Final Report\nEverything we learned.",
        supports_citations: bool = True,
    ) -> None:
        super().__init__("scripted", supports_citations=supports_citations)
        self.planner_replies = list(planner or [])
        self.clarification_replies = list(clarification or [])
        self.search_citations = search_citations or {}
        self.search_errors = search_errors or {}
        self.synthesis = synthesis
        self.searched: list[str] = []
        self.planner_prompts: list[str] = []
        self.synthesis_calls = 0

    async def _reply(self, model: str, messages: Sequence[Message], **kwargs) -> ModelResponse:
        self.calls.append({"model": model, "messages": list(messages), **kwargs})
        text = message_text(messages)
        if kwargs.get("json_output"):
            self.planner_prompts.append(text)
            if not self.planner_replies:
                raise AssertionError("planner called more times than scripted")
            return self._wrap(model, self.planner_replies.pop(0))
        if kwargs.get("web_search") and kwargs.get("system_instruction"):
            return self._wrap(model, self.clarification_replies.pop(0))
        if kwargs.get("web_search"):
            query = text.split(SEARCH_PREFIX, 1)[1].strip()
            self.searched.append(query)
            if query in self.search_errors:
                raise self.search_errors[query]
            return ModelResponse(
                provider=self._name,
                model=model,
                text=f"Findings about {query}",
                citations=list(self.search_citations.get(query, [])),
            )
        self.synthesis_calls += 1
        return self._wrap(model, self.synthesis)


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        clarification="Ask one clarifying question or summarise. Reply as JSON.",
        planner=(
            "You are Agent {persona} ({persona_title}).\n"
            "Query: {query}\nGoal: {clarified_context}\nFile: {file_name}\n"
            "Cycles: {search_cycles} (finish allowed from {min_search_cycles})\n"
            "<searches>{search_history}</searches>\n<learnings>{read_history}</learnings>\n"
            "Debate:\n{conversation}\n{first_turn_rule}"
        ),
        search=SEARCH_PREFIX + "{query}",
        synthesis=(
            "Q: {query}\nGoal: {clarified_context}\nFile: {file_name}\n"
            "Searches:\n{search_history}\nLearnings:\n{learnings}\nSources:\n{sources}"
        ),
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        provider="scripted",
        mode="Balanced",
        output_dir=tmp_path / "output",
        min_search_cycles=7,
        max_search_cycles=None,
        pacing_delay_sec=0.0,
        search_concurrency=4,
        search_retries=0,
    )


@pytest.fixture
def sample_roles() -> RoleModels:
    return RoleModels(
        planner="planner-model",
        searcher="searcher-model",
        synthesizer="synth-model",
        clarification="clarify-model",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
    sample_roles: RoleModels,
) -> AppConfig:
    provider_cfg = ProviderConfig(
        name="scripted",
        sdk="test",
        api_key_env="SCRIPTED_API_KEY",
        timeout_sec=30,
        supports_citations=True,
        modes={
            "Balanced": sample_roles,
            "Fast": RoleModels("fast-planner", "fast-searcher", "fast-synth", "fast-clarify"),
        },
    )
    return AppConfig(
        defaults=sample_defaults_config,
        providers={"scripted": provider_cfg},
        prompts=sample_prompts_config,
        available_providers={"scripted"},
    )


@pytest.fixture
def sample_file() -> FileData:
    return FileData(name="notes.pdf", mime_type="application/pdf", data="JVBERi0xLjQK")


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()
