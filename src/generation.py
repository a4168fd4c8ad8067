"""Prompt building and structured-output parsing on top of an AIProvider.

One ResponseGenerator serves the four LLM-backed capabilities of the board:
persona replies, discussion summaries, intent classification and routing.
"""

import dataclasses
import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from config.config_loader import PromptsConfig
from src.intent import Intent
from src.models import AgentReply, StructuredOutput, TokenUsage
from src.providers.base import AIProvider, Completion, CompletionRequest, ProviderError

logger = logging.getLogger(__name__)

_ROLE_MAP = {"user": "user", "agent": "assistant", "assistant": "assistant", "system": "user"}
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

AGENT_RESPONSE_SCHEMA: dict[str, Any] = {
    "name": "agent_response",
    "schema": {
        "type": "object",
        "properties": {
            "content": {"type": "string", "description": "The reply shown to the board"},
            "reasoning": {"type": "string", "description": "Why the persona takes this view"},
            "confidence": {"type": "number", "description": "Confidence from 0 to 1"},
            "suggestions": {"type": "array", "items": {"type": "string"}},
            "silent": {"type": "boolean", "description": "True to stay silent this turn"},
        },
        "required": ["content", "reasoning", "confidence", "suggestions", "silent"],
        "additionalProperties": False,
    },
}

INTENT_SCHEMA: dict[str, Any] = {
    "name": "intent_label",
    "schema": {
        "type": "object",
        "properties": {"intent": {"type": "string", "enum": [i.value for i in Intent]}},
        "required": ["intent"],
        "additionalProperties": False,
    },
}

ROUTING_SCHEMA: dict[str, Any] = {
    "name": "persona_choice",
    "schema": {
        "type": "object",
        "properties": {"personaId": {"type": "string"}},
        "required": ["personaId"],
        "additionalProperties": False,
    },
}


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Parse a JSON object from model output, tolerating code fences. None if not an object."""
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    try:
        parsed = json.loads(cleaned)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return min(1.0, max(0.0, confidence))


def parse_agent_reply(completion: Completion) -> AgentReply:
    """Turn a completion into an AgentReply.

    Malformed structured output degrades to the raw text with empty fields.
    Empty content is treated as silence.
    """
    usage = TokenUsage(completion.prompt_tokens, completion.completion_tokens)
    data = parse_json_object(completion.text)
    if data is None:
        logger.warning("%s returned non-JSON agent output, using raw text", completion.provider)
        content = completion.text.strip()
        return AgentReply(content=content, usage=usage, silent=not content)

    suggestions = data.get("suggestions")
    if not isinstance(suggestions, list):
        suggestions = []
    content = data.get("content")
    content = content.strip() if isinstance(content, str) else ""
    reasoning = data.get("reasoning")

    return AgentReply(
        content=content,
        structured_output=StructuredOutput(
            reasoning=reasoning if isinstance(reasoning, str) else "",
            confidence=_clamp_confidence(data.get("confidence")),
            suggestions=tuple(str(s) for s in suggestions if str(s).strip()),
        ),
        usage=usage,
        silent=data.get("silent") is True or not content,
    )


def history_to_turns(history: Sequence[dict[str, str]]) -> list[dict[str, str]]:
    """Map stored role/content pairs onto provider chat turns.

    Agent turns are labelled with the speaker so each persona sees who said what.
    """
    turns: list[dict[str, str]] = []
    for entry in history:
        content = (entry.get("content") or "").strip()
        if not content:
            continue
        speaker = entry.get("speaker")
        if entry.get("role") == "agent" and speaker:
            content = f"[{speaker}] {content}"
        turns.append({"role": _ROLE_MAP.get(entry.get("role", "user"), "user"), "content": content})
    return turns


class ResponseGenerator:
    """LLM-backed generation for persona replies, summaries, intents and routing."""

    def __init__(self, provider: AIProvider, prompts: PromptsConfig) -> None:
        self._provider = provider
        self._prompts = prompts

    @property
    def provider(self) -> AIProvider:
        return self._provider

    async def _complete(self, request: CompletionRequest) -> Completion:
        """Call the provider, retrying once on timeout with 1.5x the timeout."""
        try:
            return await self._provider.complete(request)
        except ProviderError as exc:
            if "timed out" not in str(exc).lower():
                raise
            # The provider config is shared by every conversation; only the request changes
            cfg = getattr(self._provider, "_config", None)
            base_timeout = request.timeout_sec or getattr(cfg, "timeout_sec", None)
            if base_timeout:
                request = dataclasses.replace(request, timeout_sec=base_timeout * 1.5)
                logger.warning(
                    "Provider %s timed out, retrying with %gs (1.5x)",
                    self._provider.name(), request.timeout_sec,
                )
            else:
                logger.warning("Provider %s timed out, retrying", self._provider.name())
            return await self._provider.complete(request)

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        history: Sequence[dict[str, str]],
        persona_meta: dict[str, Any] | None = None,
    ) -> AgentReply:
        """Generate one persona reply, or a silent reply.

        Raises:
            ProviderError: On backend failure after the timeout retry.
        """
        meta = persona_meta or {}
        system = self._prompts.agent_protocol.format(
            persona_prompt=system_prompt,
            name=meta.get("name", "a board member"),
            roster=", ".join(meta.get("roster", [])) or "none",
            role=meta.get("role", "primary responder"),
            responders=", ".join(meta.get("responders", [])) or "you",
            mode=meta.get("mode", "routed"),
        )
        turns = history_to_turns(history)
        turns.append({"role": "user", "content": user_message})

        completion = await self._complete(CompletionRequest(
            system=system,
            messages=turns,
            json_schema=AGENT_RESPONSE_SCHEMA,
        ))
        return parse_agent_reply(completion)

    async def summarize(self, lines: Sequence[str]) -> str:
        completion = await self._complete(CompletionRequest(
            system=self._prompts.summary,
            messages=[{"role": "user", "content": "\n\n".join(lines)}],
            temperature=0.5,
        ))
        return completion.text.strip()

    async def classify_intent(self, text: str) -> str:
        """Return the delegate's raw intent label; validation is the caller's job."""
        completion = await self._complete(CompletionRequest(
            system=self._prompts.intent.format(labels=", ".join(i.value for i in Intent)),
            messages=[{"role": "user", "content": text}],
            json_schema=INTENT_SCHEMA,
            temperature=0.0,
            max_tokens=20,
        ))
        data = parse_json_object(completion.text) or {}
        return str(data.get("intent", ""))

    async def choose_persona(self, roster: list[dict], message: str) -> str | None:
        roster_lines = "\n".join(
            f"- {p['id']}: {p['name']}, {p['description']} (capabilities: {', '.join(p['capabilities']) or 'none'})"
            for p in roster
        )
        completion = await self._complete(CompletionRequest(
            system=self._prompts.routing.format(roster=roster_lines),
            messages=[{"role": "user", "content": message}],
            json_schema=ROUTING_SCHEMA,
            temperature=0.0,
            max_tokens=30,
        ))
        data = parse_json_object(completion.text) or {}
        persona_id = data.get("personaId")
        return persona_id.strip() if isinstance(persona_id, str) and persona_id.strip() else None
