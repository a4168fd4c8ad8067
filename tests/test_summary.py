"""Tests for src/summary.py."""

from unittest.mock import AsyncMock

import pytest

from src.models import StructuredOutput
from src.providers.base import ProviderError
from src.stores.memory import InMemoryConversationStore, InMemoryMessageStore
from src.summary import NO_DISCUSSION, SummaryGenerator, format_agent_lines


@pytest.fixture
def conversation():
    return InMemoryConversationStore().create(["pm", "developer"])


async def test_no_agent_messages_returns_sentinel(conversation):
    messages = InMemoryMessageStore()
    await messages.create_user_message(conversation, "hi")
    summarizer = AsyncMock()

    result = await SummaryGenerator(messages, summarizer).summarize(conversation.id)

    assert result == NO_DISCUSSION == "No discussion yet."
    summarizer.assert_not_awaited()


async def test_summary_uses_every_agent_message_in_order(conversation):
    messages = InMemoryMessageStore()
    await messages.create_user_message(conversation, "Should we launch?")
    await messages.create_agent_message(conversation, "pm", "Launch in Q3.", StructuredOutput())
    await messages.create_agent_message(conversation, "developer", "Infra is ready.", StructuredOutput())
    summarizer = AsyncMock(return_value="Launch in Q3; infra ready.")

    result = await SummaryGenerator(messages, summarizer).summarize(conversation.id)

    assert result == "Launch in Q3; infra ready."
    summarizer.assert_awaited_once_with(["pm: Launch in Q3.", "developer: Infra is ready."])


async def test_summarizer_failure_propagates(conversation):
    messages = InMemoryMessageStore()
    await messages.create_agent_message(conversation, "pm", "Go.", StructuredOutput())
    summarizer = AsyncMock(side_effect=ProviderError("openai", "API call failed"))

    with pytest.raises(ProviderError):
        await SummaryGenerator(messages, summarizer).summarize(conversation.id)


def test_format_agent_lines_skips_user_messages():
    assert format_agent_lines([]) == []
