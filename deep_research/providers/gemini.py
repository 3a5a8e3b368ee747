"""Gemini provider using google-genai SDK with native async."""

import asyncio
import base64
import logging
import os
import time
from collections.abc import Sequence

from google import genai
from google.genai import types as genai_types

from config.config_loader import ProviderConfig
from deep_research.models import Citation
from deep_research.providers.base import AIProvider, Attachment, Message, ModelResponse, ProviderError

logger = logging.getLogger(__name__)


def _to_part(part: str | Attachment) -> genai_types.Part:
    if isinstance(part, Attachment):
        return genai_types.Part.from_bytes(data=base64.b64decode(part.data), mime_type=part.mime_type)
    return genai_types.Part.from_text(text=part)


def _extract_citations(response: genai_types.GenerateContentResponse) -> list[Citation]:
    """Pull grounding web references out of the first candidate."""
    if not response.candidates:
        return []
    metadata = response.candidates[0].grounding_metadata
    if metadata is None or not metadata.grounding_chunks:
        return []
    citations: list[Citation] = []
    for chunk in metadata.grounding_chunks:
        if chunk.web is None or not chunk.web.uri:
            continue
        citations.append(Citation(url=chunk.web.uri, title=chunk.web.title or chunk.web.uri))
    return citations


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    supports_citations = True

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    async def generate(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        system_instruction: str | None = None,
        temperature: float = 0.7,
        web_search: bool = False,
        json_output: bool = False,
    ) -> ModelResponse:
        contents = [
            genai_types.Content(role=m.role, parts=[_to_part(p) for p in m.parts])
            for m in messages
        ]
        gen_config = genai_types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            tools=[genai_types.Tool(google_search=genai_types.GoogleSearch())] if web_search else None,
            response_mime_type="application/json" if json_output else None,
        )

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=model,
                    contents=contents,
                    config=gen_config,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        citations = _extract_citations(response) if web_search else []

        logger.info(
            "Gemini %s: %.2fs, %s tokens, %d citations",
            model,
            latency,
            token_count,
            len(citations),
        )

        return ModelResponse(
            provider=self._config.name,
            model=model,
            text=response.text,
            citations=citations,
            latency_sec=latency,
            token_count=token_count,
        )
