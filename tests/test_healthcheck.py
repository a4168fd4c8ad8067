"""Unit tests for src/healthcheck.py — no real API calls."""

import asyncio
from unittest.mock import AsyncMock

import src.healthcheck as hc
from src.healthcheck import run_health_checks
from src.providers.base import ProviderError

from tests.conftest import MockProvider


async def test_all_providers_pass():
    """All providers succeed -> all marked ok, no errors."""
    providers = {
        "claude": MockProvider("claude", "OK"),
        "gemini": MockProvider("gemini", "OK"),
    }

    results = await run_health_checks(providers)

    assert results["claude"] == (True, "")
    assert results["gemini"] == (True, "")
    providers["claude"].complete.assert_awaited_once()


async def test_ping_uses_small_completion():
    provider = MockProvider("openai", "OK")
    await run_health_checks({"openai": provider})
    request = provider.complete.await_args.args[0]
    assert request.max_tokens == 5
    assert request.json_schema is None
    assert request.messages[0]["role"] == "user"


async def test_one_provider_fails():
    """A provider that raises returns ok=False with the error message."""
    providers = {
        "claude": MockProvider("claude", "OK"),
        "grok": MockProvider("grok"),
    }
    providers["grok"].complete = AsyncMock(side_effect=ProviderError("grok", "403 Forbidden"))

    results = await run_health_checks(providers)

    assert results["claude"] == (True, "")
    ok, err = results["grok"]
    assert ok is False
    assert "403" in err


async def test_empty_providers():
    """Empty provider dict returns empty results."""
    results = await run_health_checks({})
    assert results == {}


async def test_timeout_counts_as_failure(monkeypatch):
    """A provider that hangs past the timeout is marked as failed."""
    providers = {"slow": MockProvider("slow")}

    async def hang(*args, **kwargs):
        await asyncio.sleep(9999)

    providers["slow"].complete = AsyncMock(side_effect=hang)
    monkeypatch.setattr(hc, "_TIMEOUT_SEC", 0.05)

    results = await run_health_checks(providers)

    ok, _ = results["slow"]
    assert ok is False
