"""Abstract base for all AI model providers."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field

from deep_research.models import Citation


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


@dataclass(frozen=True)
class Attachment:
    mime_type: str
    data: str              # base64 payload


PromptPart = str | Attachment


@dataclass
class Message:
    role: str              # "user" or "model"
    parts: list[PromptPart]


def user_message(*parts: PromptPart) -> list[Message]:
    """Wrap prompt parts as a single-turn conversation."""
    return [Message(role="user", parts=list(parts))]


@dataclass
class ModelResponse:
    provider: str          # "gemini" or "openai"
    model: str             # actual model string used
    text: str
    citations: list[Citation] = field(default_factory=list)
    latency_sec: float = 0.0
    token_count: int | None = None


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    # Whether responses can carry grounding citations. Callers must not
    # assume citation support is universal.
    supports_citations: bool = False

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'openai')."""
        ...

    @abstractmethod
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
        """Generate a response for the given conversation.

        Args:
            model: Model identifier to call.
            messages: Ordered turns, each holding text or binary attachment parts.
            system_instruction: Optional system prompt.
            temperature: Sampling temperature.
            web_search: Ground the answer with web search where supported.
            json_output: Ask the backend for a JSON response where supported.

        Returns:
            ModelResponse with text and, where supported, citations.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...
