"""In-memory store implementations for the CLI and tests."""

import dataclasses
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from src.errors import ConversationNotFoundError
from src.models import (
    Conversation,
    Message,
    MessageRole,
    Persona,
    StructuredOutput,
)
from src.stores.base import (
    MUTABLE_CONVERSATION_FIELDS,
    AnalyticsRecorder,
    ConversationStore,
    MessageStore,
    PersonaStore,
)


class InMemoryConversationStore(ConversationStore):

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}

    def create(
        self,
        active_personas: Iterable[str],
        max_rounds: int = 3,
        title: str = "New Conversation",
        context: str | None = None,
    ) -> Conversation:
        conversation = Conversation(
            id=str(uuid.uuid4()),
            active_personas=tuple(active_personas),
            max_rounds=max_rounds,
            title=title,
            context=context,
        )
        self._conversations[conversation.id] = conversation
        return conversation

    async def get(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    async def update(self, conversation_id: str, fields: Mapping[str, Any]) -> Conversation:
        unknown = set(fields) - MUTABLE_CONVERSATION_FIELDS
        if unknown:
            raise ValueError(f"Cannot update conversation fields: {', '.join(sorted(unknown))}")
        current = self._conversations.get(conversation_id)
        if current is None:
            raise ConversationNotFoundError(conversation_id)
        updated = dataclasses.replace(current, **fields)
        self._conversations[conversation_id] = updated
        return updated


class InMemoryPersonaStore(PersonaStore):

    def __init__(self, personas: Iterable[Persona] = ()) -> None:
        self._personas = {p.id: p for p in personas}

    async def find_by_ids(self, persona_ids: list[str]) -> list[Persona]:
        return [self._personas[pid] for pid in persona_ids if pid in self._personas]


class InMemoryMessageStore(MessageStore):

    def __init__(self) -> None:
        self._messages: dict[str, list[Message]] = {}

    def _append(self, message: Message) -> Message:
        self._messages.setdefault(message.conversation_id, []).append(message)
        return message

    async def list_by_conversation(self, conversation_id: str) -> list[Message]:
        # Insertion order equals creation order, including equal timestamps
        return list(self._messages.get(conversation_id, []))

    async def create_agent_message(
        self,
        conversation: Conversation,
        persona_id: str,
        content: str,
        structured_output: StructuredOutput,
    ) -> Message:
        return self._append(Message(
            id=str(uuid.uuid4()),
            conversation_id=conversation.id,
            role=MessageRole.AGENT,
            content=content,
            round_number=conversation.current_round,
            created_at=datetime.now(timezone.utc),
            agent_type=persona_id,
            structured_output=structured_output,
        ))

    async def create_user_message(self, conversation: Conversation, content: str) -> Message:
        return self._append(Message(
            id=str(uuid.uuid4()),
            conversation_id=conversation.id,
            role=MessageRole.USER,
            content=content,
            round_number=conversation.current_round,
            created_at=datetime.now(timezone.utc),
        ))

    async def delete_message(self, conversation_id: str, message_id: str) -> None:
        messages = self._messages.get(conversation_id, [])
        self._messages[conversation_id] = [m for m in messages if m.id != message_id]


@dataclass
class SessionAnalytics:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    estimated_cost: float = 0.0
    participation: dict[str, int] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class InMemoryAnalyticsRecorder(AnalyticsRecorder):
    """Token and participation counters with a rough USD cost estimate."""

    def __init__(
        self,
        prompt_cost_per_million: float = 2.50,
        completion_cost_per_million: float = 10.00,
    ) -> None:
        self._prompt_cost = prompt_cost_per_million / 1_000_000
        self._completion_cost = completion_cost_per_million / 1_000_000
        self._sessions: dict[str, SessionAnalytics] = {}

    def get(self, conversation_id: str) -> SessionAnalytics:
        return self._sessions.setdefault(conversation_id, SessionAnalytics())

    async def record_tokens(self, conversation_id: str, prompt_tokens: int, completion_tokens: int) -> None:
        analytics = self.get(conversation_id)
        analytics.prompt_tokens += prompt_tokens
        analytics.completion_tokens += completion_tokens
        analytics.estimated_cost = round(
            analytics.prompt_tokens * self._prompt_cost
            + analytics.completion_tokens * self._completion_cost,
            4,
        )

    async def record_participation(self, conversation_id: str, persona_id: str) -> None:
        analytics = self.get(conversation_id)
        analytics.participation[persona_id] = analytics.participation.get(persona_id, 0) + 1
