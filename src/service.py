"""Board service: wires the turn pipeline together and shapes API-style results."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from config.config_loader import AppConfig
from src.errors import ConversationNotFoundError
from src.generation import ResponseGenerator
from src.intent import IntentClassifier
from src.models import Conversation, CycleResult
from src.notifier import EventNotifier, NullNotifier
from src.orchestrator import NoPacer, Pacer, RandomPacer, TurnOrchestrator, message_payload
from src.providers.base import AIProvider
from src.routing import build_router
from src.stores.base import ConversationStore
from src.stores.memory import (
    InMemoryAnalyticsRecorder,
    InMemoryConversationStore,
    InMemoryMessageStore,
    InMemoryPersonaStore,
)
from src.summary import SummaryGenerator

logger = logging.getLogger(__name__)


class BoardroomService:
    """Entry point for callers: persist the user message, run the cycle, report."""

    def __init__(
        self,
        conversations: ConversationStore,
        orchestrator: TurnOrchestrator,
        summaries: SummaryGenerator,
    ) -> None:
        self._conversations = conversations
        self._orchestrator = orchestrator
        self._summaries = summaries

    async def post_message(self, conversation_id: str, text: str) -> CycleResult:
        return await self._orchestrator.post_user_message(conversation_id, text)

    async def process(self, conversation_id: str, message: str) -> dict[str, Any]:
        result = await self.post_message(conversation_id, message)
        return {
            "success": True,
            "data": [message_payload(m) for m in result.messages],
            "count": result.count,
        }

    async def summary(self, conversation_id: str) -> dict[str, Any]:
        if await self._conversations.get(conversation_id) is None:
            raise ConversationNotFoundError(conversation_id)
        text = await self._summaries.summarize(conversation_id)
        return {"success": True, "data": {"summary": text}}


@dataclass
class Boardroom:
    """Everything ``build_boardroom`` assembles, for callers that need the parts."""

    service: BoardroomService
    orchestrator: TurnOrchestrator
    conversations: InMemoryConversationStore
    messages: InMemoryMessageStore
    analytics: InMemoryAnalyticsRecorder
    generator: ResponseGenerator

    def new_conversation(
        self,
        persona_ids: Sequence[str],
        max_rounds: int,
        title: str = "New Conversation",
    ) -> Conversation:
        return self.conversations.create(persona_ids, max_rounds=max_rounds, title=title)


def build_boardroom(
    config: AppConfig,
    provider: AIProvider,
    notifier: EventNotifier | None = None,
    pacer: Pacer | None = None,
    pacing: bool = True,
) -> Boardroom:
    """Assemble an in-memory boardroom around one provider.

    Routing and intent delegation use the same provider as persona replies.
    """
    generator = ResponseGenerator(provider, config.prompts)
    conversations = InMemoryConversationStore()
    messages = InMemoryMessageStore()
    analytics = InMemoryAnalyticsRecorder(
        prompt_cost_per_million=config.pricing.prompt_per_million,
        completion_cost_per_million=config.pricing.completion_per_million,
    )

    if pacer is None:
        pacer = RandomPacer(config.pacing.min_sec, config.pacing.max_sec) if pacing else NoPacer()

    router = build_router(
        chair=config.defaults.chair,
        decider=generator.choose_persona,
        strategies=config.routing.strategies,
    )
    classifier = IntentClassifier(generator.classify_intent if config.routing.delegated_intent else None)

    orchestrator = TurnOrchestrator(
        conversations=conversations,
        personas=InMemoryPersonaStore(config.personas.values()),
        messages=messages,
        analytics=analytics,
        notifier=notifier or NullNotifier(),
        generate=generator.generate,
        router=router,
        classifier=classifier,
        pacer=pacer,
        follow_up=config.defaults.follow_up,
        history_limit=config.defaults.history_limit,
    )
    service = BoardroomService(
        conversations=conversations,
        orchestrator=orchestrator,
        summaries=SummaryGenerator(messages, generator.summarize),
    )
    logger.debug(
        "Boardroom ready: provider=%s, strategies=%s, follow_up=%s",
        provider.name(), config.routing.strategies, config.defaults.follow_up,
    )
    return Boardroom(
        service=service,
        orchestrator=orchestrator,
        conversations=conversations,
        messages=messages,
        analytics=analytics,
        generator=generator,
    )
