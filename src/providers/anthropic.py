"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import json
import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from src.providers.base import AIProvider, Completion, CompletionRequest, ProviderError

logger = logging.getLogger(__name__)


def _merge_turns(messages: list[dict[str, str]]) -> list[dict[str, str]]:
    """Merge consecutive same-role turns; the first turn must come from the user."""
    merged: list[dict[str, str]] = []
    for message in messages:
        if merged and merged[-1]["role"] == message["role"]:
            merged[-1] = {"role": message["role"], "content": f"{merged[-1]['content']}\n\n{message['content']}"}
        else:
            merged.append(dict(message))
    if merged and merged[0]["role"] != "user":
        merged.insert(0, {"role": "user", "content": "(discussion so far)"})
    return merged


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def complete(self, request: CompletionRequest) -> Completion:
        system = request.system
        if request.json_schema:
            system += (
                "\n\nRespond with a single JSON object and nothing else. "
                f"It must match this JSON schema:\n{json.dumps(request.json_schema['schema'])}"
            )
        kwargs: dict = {
            "model": self._config.model,
            "max_tokens": request.max_tokens or self._config.max_tokens,
            "system": system,
            "messages": _merge_turns(request.messages),
        }
        temperature = request.temperature if request.temperature is not None else self._config.temperature
        if temperature is not None:
            kwargs["temperature"] = temperature

        timeout = request.timeout_sec or self._config.timeout_sec
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**kwargs),
                timeout=timeout,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {timeout:g}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise ProviderError(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        prompt_tokens = completion_tokens = 0
        if response.usage:
            prompt_tokens = response.usage.input_tokens
            completion_tokens = response.usage.output_tokens

        logger.info(
            "Anthropic %s: %.2fs, %d+%d tokens",
            self._config.name,
            latency,
            prompt_tokens,
            completion_tokens,
        )

        return Completion(
            provider=self._config.name,
            model=self._config.model,
            text="\n".join(text_blocks),
            latency_sec=latency,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
