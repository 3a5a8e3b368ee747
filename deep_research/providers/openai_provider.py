"""OpenAI provider using openai SDK with native async.

Also serves OpenAI-compatible gateways via base_url. The chat completions API
has no grounding mechanism, so responses never carry citations.
"""

import asyncio
import logging
import os
import time
from collections.abc import Sequence

from openai import AsyncOpenAI

from config.config_loader import ProviderConfig
from deep_research.providers.base import AIProvider, Attachment, Message, ModelResponse, ProviderError

logger = logging.getLogger(__name__)

_ROLE_MAP = {"user": "user", "model": "assistant"}


def _to_chat_message(message: Message) -> dict:
    texts = [p for p in message.parts if isinstance(p, str)]
    images = [
        p for p in message.parts
        if isinstance(p, Attachment) and p.mime_type.startswith("image/")
    ]
    dropped = len(message.parts) - len(texts) - len(images)
    if dropped:
        logger.debug("Dropping %d non-image attachment(s) unsupported by chat completions", dropped)

    role = _ROLE_MAP.get(message.role, "user")
    if not images:
        return {"role": role, "content": "\n".join(texts)}
    content: list[dict] = [{"type": "text", "text": t} for t in texts]
    content += [
        {"type": "image_url", "image_url": {"url": f"data:{img.mime_type};base64,{img.data}"}}
        for img in images
    ]
    return {"role": role, "content": content}


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK."""

    supports_citations = False

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

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
        chat: list[dict] = []
        if system_instruction:
            chat.append({"role": "system", "content": system_instruction})
        chat += [_to_chat_message(m) for m in messages]

        if web_search:
            logger.debug("Web search requested but not available on %s; answering from model knowledge", model)

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model,
                    messages=chat,
                    temperature=temperature,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info(
            "OpenAI %s: %.2fs, %s tokens",
            model,
            latency,
            token_count,
        )

        return ModelResponse(
            provider=self._config.name,
            model=model,
            text=choice.message.content,
            citations=[],
            latency_sec=latency,
            token_count=token_count,
        )
