"""Shared pytest fixtures."""

import json
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PacingConfig, PromptsConfig
from src.intent import IntentClassifier
from src.models import AgentReply, Conversation, Persona, StructuredOutput, TokenUsage
from src.notifier import EventNotifier
from src.orchestrator import NoPacer, TurnOrchestrator
from src.providers.base import AIProvider, Completion, CompletionRequest
from src.routing import build_router
from src.stores.memory import (
    InMemoryAnalyticsRecorder,
    InMemoryConversationStore,
    InMemoryMessageStore,
    InMemoryPersonaStore,
)


def make_persona(persona_id: str, name: str, capabilities: tuple[str, ...] = (), **kwargs) -> Persona:
    return Persona(
        id=persona_id,
        name=name,
        description=f"{name} on the board",
        system_prompt=f"You are the {name}.",
        capabilities=frozenset(capabilities),
        **kwargs,
    )


@pytest.fixture
def pm() -> Persona:
    return make_persona("pm", "Product Manager", ("roadmap", "prioritization"))


@pytest.fixture
def developer() -> Persona:
    return make_persona("developer", "Developer", ("code", "architecture", "scalability"))


@pytest.fixture
def marketing() -> Persona:
    return make_persona("marketing", "Marketing Strategist", ("positioning", "pricing", "growth"))


@pytest.fixture
def ux() -> Persona:
    return make_persona("ux", "UX Researcher", ("user research", "usability"))


@pytest.fixture
def qa() -> Persona:
    return make_persona("qa", "QA Lead", ("testing",))


@pytest.fixture
def board_personas(pm, developer, marketing) -> list[Persona]:
    return [pm, developer, marketing]


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="openai",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=400,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        agent_protocol="{persona_prompt}\nYou are {name} ({role}, {mode}). Board: {roster}. Speaking: {responders}.",
        summary="Summarize the board discussion.",
        routing="Pick one member:\n{roster}",
        intent="Classify into one of: {labels}.",
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        provider="openai",
        chair="pm",
        max_rounds=3,
        active_personas=["pm", "developer", "marketing"],
        output_dir=tmp_path / "output",
        follow_up="pm",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
    board_personas: list[Persona],
) -> AppConfig:
    model_cfg = ModelConfig(
        name="openai",
        sdk="openai",
        model="gpt-4o-mini",
        api_key_env="OPENAI_API_KEY",
        timeout_sec=60,
        max_tokens=400,
    )
    return AppConfig(
        defaults=sample_defaults_config,
        models={"openai": model_cfg},
        prompts=sample_prompts_config,
        personas={p.id: p for p in board_personas},
        pacing=PacingConfig(0.0, 0.0),
        available_providers={"openai"},
    )


def agent_json(
    content: str,
    reasoning: str = "because",
    confidence: float = 0.8,
    suggestions: list[str] | None = None,
    silent: bool = False,
) -> str:
    return json.dumps({
        "content": content,
        "reasoning": reasoning,
        "confidence": confidence,
        "suggestions": suggestions or [],
        "silent": silent,
    })


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_text: str = "Mock response") -> None:
        self._name = provider_name
        self._response_text = response_text
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because complete is defined in the class body below.
        self.complete = AsyncMock(  # type: ignore[assignment]
            return_value=Completion(
                provider=provider_name,
                model="mock-model",
                text=response_text,
                latency_sec=0.1,
                prompt_tokens=10,
                completion_tokens=5,
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def complete(self, request: CompletionRequest) -> Completion:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return Completion(
            provider=self._name,
            model="mock-model",
            text=self._response_text,
            latency_sec=0.1,
        )


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


def reply(content: str, confidence: float = 0.7, tokens: tuple[int, int] = (10, 5)) -> AgentReply:
    return AgentReply(
        content=content,
        structured_output=StructuredOutput(reasoning="r", confidence=confidence, suggestions=("s1",)),
        usage=TokenUsage(*tokens),
    )


SILENT = AgentReply(content="", silent=True)


def replies_by_name(mapping: dict[str, AgentReply | Exception]):
    """side_effect for a generate AsyncMock: answer per persona name from persona_meta."""

    async def _generate(system_prompt, user_message, history, meta):
        outcome = mapping.get(meta["name"], SILENT)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return _generate


@dataclass
class Board:
    conversations: InMemoryConversationStore
    personas: InMemoryPersonaStore
    messages: InMemoryMessageStore
    analytics: InMemoryAnalyticsRecorder
    notifier: AsyncMock
    generate: AsyncMock

    def orchestrator(self, follow_up: str | None = None, **kwargs) -> TurnOrchestrator:
        return TurnOrchestrator(
            conversations=self.conversations,
            personas=self.personas,
            messages=self.messages,
            analytics=self.analytics,
            notifier=self.notifier,
            generate=self.generate,
            router=kwargs.pop("router", build_router("pm")),
            classifier=kwargs.pop("classifier", IntentClassifier()),
            pacer=kwargs.pop("pacer", NoPacer()),
            follow_up=follow_up,
            **kwargs,
        )

    def create(self, persona_ids=("pm", "developer", "marketing"), max_rounds: int = 3) -> Conversation:
        return self.conversations.create(persona_ids, max_rounds=max_rounds)


@pytest.fixture
def board(pm, developer, marketing, ux, qa) -> Board:
    return Board(
        conversations=InMemoryConversationStore(),
        personas=InMemoryPersonaStore([pm, developer, marketing, ux, qa]),
        messages=InMemoryMessageStore(),
        analytics=InMemoryAnalyticsRecorder(),
        notifier=AsyncMock(spec=EventNotifier),
        generate=AsyncMock(side_effect=replies_by_name({})),
    )
