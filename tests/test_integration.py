"""Integration tests — real API calls, no mocks. Requires .env with an OpenAI key."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

pytestmark = pytest.mark.integration

if not os.environ.get("OPENAI_API_KEY", "").strip():
    pytestmark = pytest.mark.skip(reason="OPENAI_API_KEY not set")


async def test_full_board_cycle(tmp_path: Path):
    """Greet the board, tag the developer, then summarize; verify no crash."""
    from config.config_loader import load_config
    from src.cli import SDK_CLASSES
    from src.output import save_transcript
    from src.service import build_boardroom

    config = load_config()
    model_cfg = config.models["openai"]
    provider = SDK_CLASSES[model_cfg.sdk](model_cfg)
    board = build_boardroom(config, provider, pacing=False)
    conv = board.new_conversation(["pm", "developer", "marketing"], max_rounds=3)

    greeting = await board.service.process(conv.id, "hi")
    assert greeting["count"] <= 1
    assert all(m["agentType"] == "pm" for m in greeting["data"])

    tagged = await board.service.process(conv.id, "@developer can this scale to a million users?")
    assert all(m["agentType"] == "developer" for m in tagged["data"])

    summary = await board.service.summary(conv.id)
    assert summary["data"]["summary"]

    saved = save_transcript(
        await board.conversations.get(conv.id),
        await board.messages.list_by_conversation(conv.id),
        config.personas,
        tmp_path,
        summary=summary["data"]["summary"],
    )
    assert saved.exists()
