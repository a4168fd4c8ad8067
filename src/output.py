"""Rich console output and markdown transcript save for board sessions."""

import logging
import re
from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from src.models import Conversation, Message, MessageRole, Persona
from src.notifier import EventNotifier
from src.stores.memory import SessionAnalytics

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _speaker(persona: Persona | None, fallback: str) -> str:
    return persona.name if persona else fallback


class ConsoleNotifier(EventNotifier):
    """Render turn events to a rich console as they happen."""

    def __init__(self, personas: Mapping[str, Persona], out: Console | None = None) -> None:
        self._personas = personas
        self._console = out or console

    async def typing_start(self, conversation_id: str, persona_id: str, name: str | None = None) -> None:
        self._console.print(Text(f"{name or persona_id} is typing...", style="dim italic"))

    async def typing_stop(self, conversation_id: str, persona_id: str, name: str | None = None) -> None:
        return None

    async def agent_message(self, conversation_id: str, payload: dict[str, Any]) -> None:
        persona = self._personas.get(payload.get("agentType") or "")
        print_reply(payload, persona, out=self._console)

    async def round_completed(self, conversation_id: str, round_number: int) -> None:
        self._console.print(Text(f"Round {round_number} recorded", style="dim"))

    async def status_change(self, conversation_id: str, status: str) -> None:
        self._console.print(Rule(f"[bold yellow]Conversation {status}[/bold yellow]"))


def print_reply(payload: dict[str, Any], persona: Persona | None = None, out: Console | None = None) -> None:
    """Print one agent reply as a panel, with confidence and suggestions when present."""
    target = out or console
    structured = payload.get("structuredOutput") or {}
    body = payload.get("content", "")
    suggestions = structured.get("suggestions") or []
    if suggestions:
        body += "\n\n" + "\n".join(f"- {s}" for s in suggestions)

    subtitle = None
    if structured.get("confidence"):
        subtitle = f"confidence {structured['confidence']:.2f}"

    target.print(
        Panel(
            Markdown(body),
            title=f"[bold]{_speaker(persona, payload.get('agentType') or 'agent')}[/bold]",
            subtitle=subtitle,
            border_style=(persona.color if persona and persona.color else "cyan"),
        )
    )


def print_summary(summary: str, analytics: SessionAnalytics | None = None) -> None:
    """Print the discussion summary using Rich markdown."""
    console.print(Rule("[bold green]Board Summary[/bold green]"))
    if analytics is not None:
        console.print(
            Text(
                f"Tokens: {analytics.total_tokens} "
                f"({analytics.prompt_tokens} prompt + {analytics.completion_tokens} completion) | "
                f"Est. cost: ${analytics.estimated_cost:.4f}",
                style="dim",
            )
        )
    console.print(Markdown(summary))


def save_transcript(
    conversation: Conversation,
    messages: Sequence[Message],
    personas: Mapping[str, Persona],
    output_dir: Path,
    summary: str | None = None,
    analytics: SessionAnalytics | None = None,
) -> Path:
    """Save the conversation transcript as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    first_user = next((m.content for m in messages if m.role == MessageRole.USER), conversation.title)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(first_user) or 'boardroom'}.md"

    board = ", ".join(
        personas[pid].name if pid in personas else pid for pid in conversation.active_personas
    )
    lines: list[str] = [
        f"# Boardroom: {conversation.title}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Board:** {board}",
        f"**Round:** {conversation.current_round}/{conversation.max_rounds}",
        f"**Status:** {conversation.status.value}",
    ]
    if analytics is not None:
        lines.append(f"**Tokens:** {analytics.total_tokens} (est. ${analytics.estimated_cost:.4f})")
    lines += ["", "---", ""]

    for message in messages:
        if message.role == MessageRole.USER:
            lines.append("### You")
        else:
            persona = personas.get(message.agent_type or "")
            lines.append(f"### {persona.name if persona else message.agent_type}")
        lines.append("")
        lines.append(message.content)
        lines.append("")
        structured = message.structured_output
        if structured and structured.confidence:
            lines.append(f"*Round {message.round_number} | Confidence: {structured.confidence:.2f}*")
            lines.append("")

    if summary:
        lines += ["## Summary", "", summary, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath
