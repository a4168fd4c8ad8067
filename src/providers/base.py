"""Abstract base for all AI model providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


@dataclass
class CompletionRequest:
    system: str
    messages: list[dict[str, str]]          # role is "user" or "assistant"
    json_schema: dict[str, Any] | None = None  # {"name": ..., "schema": {...}}
    temperature: float | None = None
    max_tokens: int | None = None
    timeout_sec: float | None = None           # overrides the provider config for this call


@dataclass
class Completion:
    provider: str
    model: str
    text: str
    latency_sec: float
    prompt_tokens: int = 0
    completion_tokens: int = 0


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'openai', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> Completion:
        """Run one chat completion.

        Args:
            request: System prompt, chat turns and optional JSON schema for
                structured output.

        Returns:
            Completion with the response text and token usage.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...
