"""Tests for deep_research/search.py."""

import pytest

from deep_research.models import Citation
from deep_research.providers.base import ModelResponse, ProviderError
from deep_research.search import dedupe_citations, execute_single_search
from tests.conftest import MockProvider, message_text


def test_dedupe_keeps_first_title_and_order():
    citations = [
        Citation("https://a.com", "A first"),
        Citation("https://b.com", "B"),
        Citation("https://a.com", "A second"),
    ]
    assert dedupe_citations(citations) == [Citation("https://a.com", "A first"), Citation("https://b.com", "B")]


def test_dedupe_empty():
    assert dedupe_citations([]) == []


async def test_result_is_tagged_with_query(sample_prompts_config):
    provider = MockProvider(responses=["Prices fell 14% in 2024."])

    result = await execute_single_search("battery prices", provider, "searcher", sample_prompts_config)

    assert result.query == "battery prices"
    assert result.text == 'Summary for "battery prices": Prices fell 14% in 2024.'
    call = provider.calls[0]
    assert call["web_search"] is True
    assert message_text(call["messages"]) == "Search: battery prices"


async def test_citations_deduplicated(sample_prompts_config):
    reply = ModelResponse(
        provider="mock", model="m", text="t",
        citations=[Citation("https://x.com", "X"), Citation("https://x.com", "X again")],
    )
    provider = MockProvider(responses=[reply], supports_citations=True)

    result = await execute_single_search("q", provider, "m", sample_prompts_config)

    assert result.citations == [Citation("https://x.com", "X")]


async def test_no_citations_when_provider_lacks_support(sample_prompts_config):
    reply = ModelResponse(provider="mock", model="m", text="t", citations=[Citation("https://x.com", "X")])
    provider = MockProvider(responses=[reply], supports_citations=False)

    result = await execute_single_search("q", provider, "m", sample_prompts_config)

    assert result.citations == []


async def test_timeout_is_retried(sample_prompts_config, monkeypatch):
    monkeypatch.setattr("deep_research.search._RETRY_BACKOFF_SEC", 0.0)
    provider = MockProvider(responses=[ProviderError("mock", "Request timed out after 30s"), "ok"])

    result = await execute_single_search("q", provider, "m", sample_prompts_config, retries=1)

    assert result.text.endswith("ok")
    assert len(provider.calls) == 2


async def test_timeout_not_retried_by_default(sample_prompts_config):
    provider = MockProvider(responses=[ProviderError("mock", "Request timed out after 30s"), "ok"])
    with pytest.raises(ProviderError):
        await execute_single_search("q", provider, "m", sample_prompts_config)
    assert len(provider.calls) == 1


async def test_other_errors_not_retried(sample_prompts_config):
    provider = MockProvider(responses=[ProviderError("mock", "API call failed: 401"), "ok"])
    with pytest.raises(ProviderError):
        await execute_single_search("q", provider, "m", sample_prompts_config, retries=3)
    assert len(provider.calls) == 1
