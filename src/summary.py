"""Conversation summary: format agent messages, delegate to the summarizer."""

import logging
from collections.abc import Awaitable, Callable, Sequence

from src.models import Message, MessageRole
from src.stores.base import MessageStore

logger = logging.getLogger(__name__)

NO_DISCUSSION = "No discussion yet."

Summarizer = Callable[[Sequence[str]], Awaitable[str]]


def format_agent_lines(messages: Sequence[Message]) -> list[str]:
    """Render agent messages as ``persona_id: content`` in chronological order."""
    return [
        f"{m.agent_type}: {m.content}"
        for m in messages
        if m.role == MessageRole.AGENT
    ]


class SummaryGenerator:

    def __init__(self, messages: MessageStore, summarizer: Summarizer) -> None:
        self._messages = messages
        self._summarizer = summarizer

    async def summarize(self, conversation_id: str) -> str:
        """Summarize the agent side of a conversation.

        Returns:
            The summary text, or NO_DISCUSSION when no agent has spoken yet.

        Raises:
            ProviderError: If the summarizer call fails.
        """
        lines = format_agent_lines(await self._messages.list_by_conversation(conversation_id))
        if not lines:
            return NO_DISCUSSION

        logger.info("Summarizing %d agent messages for %s", len(lines), conversation_id)
        return await self._summarizer(lines)
