"""Abstract storage collaborators used by the turn pipeline."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from src.models import Conversation, Message, Persona, StructuredOutput

# The only conversation fields the orchestrator may change
MUTABLE_CONVERSATION_FIELDS = frozenset({"turn_index", "current_round", "status", "current_speaker"})


class ConversationStore(ABC):

    @abstractmethod
    async def get(self, conversation_id: str) -> Conversation | None:
        ...

    @abstractmethod
    async def update(self, conversation_id: str, fields: Mapping[str, Any]) -> Conversation:
        """Apply a partial update atomically and return the new snapshot.

        Raises:
            ConversationNotFoundError: If the conversation does not exist.
            ValueError: If ``fields`` names a field outside MUTABLE_CONVERSATION_FIELDS.
        """
        ...


class PersonaStore(ABC):

    @abstractmethod
    async def find_by_ids(self, persona_ids: list[str]) -> list[Persona]:
        """Return the personas that exist, in any order."""
        ...


class MessageStore(ABC):

    @abstractmethod
    async def list_by_conversation(self, conversation_id: str) -> list[Message]:
        """Return messages ascending by creation."""
        ...

    @abstractmethod
    async def create_agent_message(
        self,
        conversation: Conversation,
        persona_id: str,
        content: str,
        structured_output: StructuredOutput,
    ) -> Message:
        ...

    @abstractmethod
    async def create_user_message(self, conversation: Conversation, content: str) -> Message:
        ...

    @abstractmethod
    async def delete_message(self, conversation_id: str, message_id: str) -> None:
        """Remove a message. Unknown ids are ignored."""
        ...


class AnalyticsRecorder(ABC):

    @abstractmethod
    async def record_tokens(self, conversation_id: str, prompt_tokens: int, completion_tokens: int) -> None:
        ...

    @abstractmethod
    async def record_participation(self, conversation_id: str, persona_id: str) -> None:
        ...
