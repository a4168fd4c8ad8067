"""Click CLI: config loading, provider selection, the board session, and output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from src.errors import BoardroomError
from src.healthcheck import run_health_checks
from src.output import ConsoleNotifier, print_summary, save_transcript
from src.providers.anthropic import AnthropicProvider
from src.providers.base import AIProvider, ProviderError
from src.providers.gemini import GeminiProvider
from src.providers.openai_provider import OpenAIProvider
from src.service import Boardroom, build_boardroom

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

SDK_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}

_QUIT_COMMANDS = {"/quit", "/exit", "/q"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # SDK request logging drowns out the board at INFO
    for noisy in ("httpx", "httpcore", "openai", "anthropic", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _build_provider(config: AppConfig, name: str) -> AIProvider:
    """Instantiate the named provider. Raises click.UsageError when unusable."""
    if name not in config.models:
        raise click.UsageError(f"Unknown provider '{name}'. Choose from: {', '.join(sorted(config.models))}")
    model_cfg = config.models[name]
    if name not in config.available_providers:
        raise click.UsageError(f"Provider '{name}' has no API key. Set {model_cfg.api_key_env} in .env")
    if model_cfg.sdk not in SDK_CLASSES:
        raise click.UsageError(f"Provider '{name}' uses unsupported sdk '{model_cfg.sdk}'")
    try:
        return SDK_CLASSES[model_cfg.sdk](model_cfg)
    except ProviderError as exc:
        raise click.UsageError(str(exc)) from exc


def _check_provider(provider: AIProvider) -> None:
    """Ping the provider and exit when it does not answer."""
    console.print("\n[bold]Checking provider...[/bold]")
    results = asyncio.run(run_health_checks({provider.name(): provider}))
    ok, err = results[provider.name()]
    if ok:
        console.print(f"  [green]OK  [/green] {provider.name()} ({provider.model_string()})\n")
        return
    short_err = err.splitlines()[0][:120] if err else "unknown error"
    console.print(f"  [red]FAIL[/red] {provider.name()}: {short_err}")
    sys.exit(1)


def _resolve_personas(config: AppConfig, personas_arg: str | None) -> list[str]:
    if personas_arg:
        ids = [p.strip() for p in personas_arg.split(",") if p.strip()]
    else:
        ids = list(config.defaults.active_personas)
    unknown = [pid for pid in ids if pid not in config.personas]
    if unknown:
        raise click.UsageError(
            f"Unknown persona(s): {', '.join(unknown)}. Available: {', '.join(sorted(config.personas))}"
        )
    return ids


async def _say(board: Boardroom, conversation_id: str, text: str) -> None:
    console.print(f"\n[bold magenta]You:[/bold magenta] {text}")
    try:
        result = await board.service.post_message(conversation_id, text)
    except BoardroomError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        return
    if not result.messages:
        console.print("[dim]The board stayed silent.[/dim]")


async def _run_session(
    config: AppConfig,
    provider: AIProvider,
    persona_ids: list[str],
    max_rounds: int,
    messages: tuple[str, ...],
    pacing: bool,
    output_dir: Path,
) -> Path:
    board = build_boardroom(
        config,
        provider,
        notifier=ConsoleNotifier(config.personas),
        pacing=pacing,
    )
    conversation = board.new_conversation(
        persona_ids,
        max_rounds=max_rounds,
        title=messages[0][:60] if messages else "Boardroom session",
    )

    names = ", ".join(config.personas[pid].name for pid in persona_ids)
    console.print(f"\n[bold cyan]Boardroom[/bold cyan] - {len(persona_ids)} personas, {max_rounds} rounds")
    console.print(f"Board: {names}")
    console.print(f"Model: {provider.name()} ({provider.model_string()})")

    if messages:
        for text in messages:
            await _say(board, conversation.id, text)
    else:
        console.print("[dim]Type a message. Tag members with @name. /summary for a summary, /quit to leave.[/dim]")
        while True:
            text = click.prompt("", prompt_suffix="> ", default="", show_default=False).strip()
            if not text:
                continue
            if text.lower() in _QUIT_COMMANDS:
                break
            if text.lower() == "/summary":
                try:
                    summary = await board.service.summary(conversation.id)
                except ProviderError as exc:
                    console.print(f"[bold red]Summary failed:[/bold red] {exc}")
                    continue
                print_summary(summary["data"]["summary"], board.analytics.get(conversation.id))
                continue
            await _say(board, conversation.id, text)

    summary_text: str | None = None
    try:
        summary_text = (await board.service.summary(conversation.id))["data"]["summary"]
    except ProviderError as exc:
        logger.warning("Summary failed: %s", exc)
    analytics = board.analytics.get(conversation.id)
    if summary_text:
        print_summary(summary_text, analytics)

    final = await board.conversations.get(conversation.id)
    return save_transcript(
        final or conversation,
        await board.messages.list_by_conversation(conversation.id),
        config.personas,
        output_dir,
        summary=summary_text,
        analytics=analytics,
    )


@click.command()
@click.argument("message", nargs=-1)
@click.option("--personas", "personas_arg", default=None, help="Comma-separated persona ids (default: from config)")
@click.option("--max-rounds", default=None, type=click.IntRange(min=1), help="Rounds before the conversation completes")
@click.option("--provider", "provider_name", default=None, help="Model provider to use (default: from config)")
@click.option("--no-pacing", is_flag=True, default=False, help="Reply without the typing delay")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
def main(
    message: tuple[str, ...],
    personas_arg: str | None,
    max_rounds: int | None,
    provider_name: str | None,
    no_pacing: bool,
    skip_health_check: bool,
    verbose: bool,
    output_path: str | None,
) -> None:
    """Boardroom -- talk to a board of AI personas.

    Each MESSAGE is posted in order; with none, an interactive session starts.

    \b
    Examples:
      python -m src.cli "hi"
      python -m src.cli "@developer can this scale?" --no-pacing
      python -m src.cli "What CAC and LTV should we target?" --personas pm,marketing,finance
      python -m src.cli --provider claude --max-rounds 5
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    provider = _build_provider(config, provider_name or config.defaults.provider)
    persona_ids = _resolve_personas(config, personas_arg)
    effective_rounds = max_rounds if max_rounds is not None else config.defaults.max_rounds
    effective_output = Path(output_path) if output_path else config.defaults.output_dir

    if not skip_health_check:
        _check_provider(provider)

    saved_path = asyncio.run(
        _run_session(
            config=config,
            provider=provider,
            persona_ids=persona_ids,
            max_rounds=effective_rounds,
            messages=message,
            pacing=not no_pacing,
            output_dir=effective_output,
        )
    )
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


if __name__ == "__main__":
    main()
