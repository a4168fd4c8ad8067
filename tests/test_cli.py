"""Tests for the CLI in src/cli.py — no real API calls."""

from pathlib import Path
from unittest.mock import AsyncMock

import click
import pytest
from click.testing import CliRunner

import src.cli as cli
from src.providers.base import ProviderError
from tests.conftest import MockProvider, agent_json


@pytest.fixture
def provider() -> MockProvider:
    return MockProvider("openai", agent_json("Hello from the board."))


@pytest.fixture
def patched_cli(monkeypatch, sample_app_config, provider):
    monkeypatch.setattr(cli, "load_config", lambda: sample_app_config)
    monkeypatch.setitem(cli.SDK_CLASSES, "openai", lambda cfg: provider)
    return sample_app_config


def test_resolve_personas_default(sample_app_config):
    assert cli._resolve_personas(sample_app_config, None) == ["pm", "developer", "marketing"]


def test_resolve_personas_custom(sample_app_config):
    assert cli._resolve_personas(sample_app_config, "developer, pm") == ["developer", "pm"]


def test_resolve_personas_unknown(sample_app_config):
    with pytest.raises(click.UsageError, match="ghost"):
        cli._resolve_personas(sample_app_config, "pm,ghost")


def test_build_provider_unknown_name(sample_app_config):
    with pytest.raises(click.UsageError, match="Unknown provider"):
        cli._build_provider(sample_app_config, "nope")


def test_build_provider_without_key(sample_app_config):
    sample_app_config.available_providers = set()
    with pytest.raises(click.UsageError, match="OPENAI_API_KEY"):
        cli._build_provider(sample_app_config, "openai")


def test_main_runs_messages_and_saves_transcript(patched_cli, provider, tmp_path: Path):
    runner = CliRunner()
    result = runner.invoke(
        cli.main,
        ["hi", "--skip-health-check", "--no-pacing", "--output", str(tmp_path)],
    )

    assert result.exit_code == 0, result.output
    saved = list(tmp_path.glob("*.md"))
    assert len(saved) == 1
    content = saved[0].read_text(encoding="utf-8")
    assert "Hello from the board." in content
    assert "### You" in content


def test_main_interactive_quit(patched_cli, tmp_path: Path):
    runner = CliRunner()
    result = runner.invoke(
        cli.main,
        ["--skip-health-check", "--no-pacing", "--output", str(tmp_path)],
        input="hi\n/quit\n",
    )
    assert result.exit_code == 0, result.output
    assert len(list(tmp_path.glob("*.md"))) == 1


def test_main_health_check_failure_exits(patched_cli, provider, tmp_path: Path):
    provider.complete = AsyncMock(side_effect=ProviderError("openai", "401 Unauthorized"))
    runner = CliRunner()
    result = runner.invoke(cli.main, ["hi", "--no-pacing", "--output", str(tmp_path)])
    assert result.exit_code == 1
    assert list(tmp_path.glob("*.md")) == []


def test_main_unknown_persona_is_usage_error(patched_cli, tmp_path: Path):
    runner = CliRunner()
    result = runner.invoke(cli.main, ["hi", "--personas", "ghost", "--skip-health-check"])
    assert result.exit_code == 2
    assert "ghost" in result.output
