"""OpenAI provider using openai SDK with native async.

Also serves OpenAI-compatible backends (xAI Grok, DeepSeek) via ``base_url``.
"""

import asyncio
import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from src.providers.base import AIProvider, Completion, CompletionRequest, ProviderError

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI (or OpenAI-compatible) provider via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        if config.base_url:
            self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)
        else:
            self._client = AsyncOpenAI(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def complete(self, request: CompletionRequest) -> Completion:
        messages = [{"role": "system", "content": request.system}, *request.messages]
        kwargs: dict = {
            "model": self._config.model,
            "messages": messages,
            "max_tokens": request.max_tokens or self._config.max_tokens,
        }
        temperature = request.temperature if request.temperature is not None else self._config.temperature
        if temperature is not None:
            kwargs["temperature"] = temperature
        if request.json_schema:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": request.json_schema["name"],
                    "strict": True,
                    "schema": request.json_schema["schema"],
                },
            }

        timeout = request.timeout_sec or self._config.timeout_sec
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=timeout,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {timeout:g}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        prompt_tokens = completion_tokens = 0
        if response.usage:
            prompt_tokens = response.usage.prompt_tokens or 0
            completion_tokens = response.usage.completion_tokens or 0

        logger.info(
            "OpenAI %s: %.2fs, %d+%d tokens",
            self._config.name,
            latency,
            prompt_tokens,
            completion_tokens,
        )

        return Completion(
            provider=self._config.name,
            model=self._config.model,
            text=choice.message.content,
            latency_sec=latency,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
