"""Gemini provider using google-genai SDK with native async."""

import asyncio
import json
import logging
import os
import time

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from src.providers.base import AIProvider, Completion, CompletionRequest, ProviderError

logger = logging.getLogger(__name__)


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def complete(self, request: CompletionRequest) -> Completion:
        system = request.system
        if request.json_schema:
            system += f"\n\nReturn JSON matching this schema:\n{json.dumps(request.json_schema['schema'])}"
        contents = [
            genai_types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[genai_types.Part(text=m["content"])],
            )
            for m in request.messages
        ]
        temperature = request.temperature if request.temperature is not None else self._config.temperature

        timeout = request.timeout_sec or self._config.timeout_sec
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=contents,
                    config=genai_types.GenerateContentConfig(
                        system_instruction=system,
                        max_output_tokens=request.max_tokens or self._config.max_tokens,
                        temperature=temperature,
                        response_mime_type="application/json" if request.json_schema else None,
                    ),
                ),
                timeout=timeout,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {timeout:g}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        prompt_tokens = completion_tokens = 0
        if response.usage_metadata:
            prompt_tokens = response.usage_metadata.prompt_token_count or 0
            completion_tokens = response.usage_metadata.candidates_token_count or 0

        logger.info(
            "Gemini %s: %.2fs, %d+%d tokens",
            self._config.name,
            latency,
            prompt_tokens,
            completion_tokens,
        )

        return Completion(
            provider=self._config.name,
            model=self._config.model,
            text=response.text,
            latency_sec=latency,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
