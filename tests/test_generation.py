"""Tests for src/generation.py — prompt building, parsing and timeout retry."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.generation import (
    AGENT_RESPONSE_SCHEMA,
    ResponseGenerator,
    history_to_turns,
    parse_agent_reply,
    parse_json_object,
)
from src.providers.base import Completion, ProviderError
from tests.conftest import MockProvider, agent_json


def _completion(text: str) -> Completion:
    return Completion(provider="mock", model="mock-model", text=text, latency_sec=0.1,
                      prompt_tokens=12, completion_tokens=7)


class TimeoutThenOkProvider(MockProvider):
    """Times out on a first attempt, answers the retry; records the timeout of each call."""

    def __init__(self, config, text: str) -> None:
        super().__init__("slow", text)
        self._config = config
        self.timeouts: list[float] = []
        ok = _completion(text)

        async def _complete(request):
            timeout = request.timeout_sec or self._config.timeout_sec
            self.timeouts.append(timeout)
            await asyncio.sleep(0)
            if request.timeout_sec is None:
                raise ProviderError("slow", f"Request timed out after {timeout}s")
            return ok

        self.complete = AsyncMock(side_effect=_complete)


def test_parse_json_object_strips_code_fences():
    assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}


def test_parse_json_object_rejects_non_objects():
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object("not json") is None
    assert parse_json_object("") is None


def test_parse_agent_reply_full():
    reply = parse_agent_reply(_completion(agent_json("Ship the MVP.", "Fast feedback", 0.9, ["Scope it down"])))
    assert reply.content == "Ship the MVP."
    assert reply.silent is False
    assert reply.structured_output.reasoning == "Fast feedback"
    assert reply.structured_output.confidence == 0.9
    assert reply.structured_output.suggestions == ("Scope it down",)
    assert reply.usage.prompt_tokens == 12
    assert reply.usage.completion_tokens == 7


def test_parse_agent_reply_silent_flag():
    assert parse_agent_reply(_completion(agent_json("I'd rather not", silent=True))).silent is True


def test_parse_agent_reply_empty_content_is_silence():
    assert parse_agent_reply(_completion(agent_json("   "))).silent is True


def test_parse_agent_reply_clamps_confidence():
    assert parse_agent_reply(_completion(agent_json("x", confidence=7))).structured_output.confidence == 1.0
    assert parse_agent_reply(_completion(agent_json("x", confidence=-2))).structured_output.confidence == 0.0
    text = '{"content": "x", "confidence": "high"}'
    assert parse_agent_reply(_completion(text)).structured_output.confidence == 0.0


def test_parse_agent_reply_malformed_uses_raw_text():
    reply = parse_agent_reply(_completion("Just plain prose from the model."))
    assert reply.content == "Just plain prose from the model."
    assert reply.silent is False
    assert reply.structured_output.reasoning == ""
    assert reply.structured_output.suggestions == ()


def test_history_to_turns_labels_agents_and_maps_roles():
    turns = history_to_turns([
        {"role": "user", "content": "Should we launch?"},
        {"role": "agent", "content": "Yes.", "speaker": "Product Manager"},
        {"role": "agent", "content": ""},
    ])
    assert turns == [
        {"role": "user", "content": "Should we launch?"},
        {"role": "assistant", "content": "[Product Manager] Yes."},
    ]


async def test_generate_builds_request(sample_prompts_config):
    provider = MockProvider("mock", agent_json("We can scale horizontally."))
    generator = ResponseGenerator(provider, sample_prompts_config)

    reply = await generator.generate(
        "You are the Developer.",
        "can this scale?",
        [{"role": "user", "content": "earlier"}],
        {"name": "Developer", "roster": ["Product Manager", "Developer"], "responders": ["Developer"],
         "mode": "tagged", "role": "tagged responder"},
    )

    assert reply.content == "We can scale horizontally."
    request = provider.complete.await_args.args[0]
    assert request.system.startswith("You are the Developer.")
    assert "You are Developer (tagged responder, tagged)" in request.system
    assert request.messages[-1] == {"role": "user", "content": "can this scale?"}
    assert request.messages[0]["content"] == "earlier"
    assert request.json_schema is AGENT_RESPONSE_SCHEMA


async def test_generate_propagates_provider_error(sample_prompts_config):
    provider = MockProvider()
    provider.complete = AsyncMock(side_effect=ProviderError("mock", "API call failed: 500"))
    with pytest.raises(ProviderError):
        await ResponseGenerator(provider, sample_prompts_config).generate("p", "hi", [], {"name": "PM"})
    provider.complete.assert_awaited_once()


async def test_timeout_retried_once_with_longer_timeout(sample_model_config, sample_prompts_config):
    provider = TimeoutThenOkProvider(sample_model_config, agent_json("Made it."))
    reply = await ResponseGenerator(provider, sample_prompts_config).generate("p", "hi", [], {"name": "PM"})
    assert reply.content == "Made it."
    assert provider.timeouts == [30, 45]
    assert sample_model_config.timeout_sec == 30


async def test_concurrent_timeout_retries_do_not_touch_shared_config(sample_model_config, sample_prompts_config):
    provider = TimeoutThenOkProvider(sample_model_config, "Summary.")
    generator = ResponseGenerator(provider, sample_prompts_config)

    results = await asyncio.gather(generator.summarize(["pm: a"]), generator.summarize(["pm: b"]))

    assert results == ["Summary.", "Summary."]
    assert sorted(provider.timeouts) == [30, 30, 45, 45]
    assert sample_model_config.timeout_sec == 30


async def test_summarize_joins_lines(sample_prompts_config):
    provider = MockProvider("mock", "  The board agreed to launch.  ")
    summary = await ResponseGenerator(provider, sample_prompts_config).summarize(["pm: launch", "developer: ok"])
    assert summary == "The board agreed to launch."
    request = provider.complete.await_args.args[0]
    assert request.system == "Summarize the board discussion."
    assert request.messages[0]["content"] == "pm: launch\n\ndeveloper: ok"


async def test_classify_intent_returns_label(sample_prompts_config):
    provider = MockProvider("mock", '{"intent": "budget"}')
    label = await ResponseGenerator(provider, sample_prompts_config).classify_intent("How much will it cost?")
    assert label == "budget"
    request = provider.complete.await_args.args[0]
    assert "greeting" in request.system
    assert request.json_schema["name"] == "intent_label"


async def test_classify_intent_garbage_returns_empty(sample_prompts_config):
    provider = MockProvider("mock", "no idea")
    assert await ResponseGenerator(provider, sample_prompts_config).classify_intent("hmm?") == ""


async def test_choose_persona(sample_prompts_config):
    provider = MockProvider("mock", '{"personaId": " marketing "}')
    roster = [{"id": "marketing", "name": "Marketing", "description": "Growth", "capabilities": ["pricing"]}]
    chosen = await ResponseGenerator(provider, sample_prompts_config).choose_persona(roster, "pricing?")
    assert chosen == "marketing"
    assert "marketing: Marketing" in provider.complete.await_args.args[0].system


async def test_choose_persona_missing_id(sample_prompts_config):
    provider = MockProvider("mock", '{"personaId": ""}')
    assert await ResponseGenerator(provider, sample_prompts_config).choose_persona([], "x") is None
