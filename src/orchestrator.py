"""Turn orchestration: who answers a user message, in what order, and how counters move.

One cycle per user message:
    resolve responders -> for each responder, strictly in order:
    typing -> pace -> generate -> persist -> turn patch -> analytics -> notify
    -> round check.

Per-persona failures are contained: the persona is skipped, the cycle goes on,
and counters reflect only the replies that were actually persisted.
"""

import asyncio
import logging
import random
import weakref
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from src.errors import ConversationNotFoundError, PersonaNotFoundError
from src.intent import IntentClassifier
from src.models import (
    AgentReply,
    Conversation,
    CycleResult,
    Message,
    MessageRole,
    Persona,
    ResolveMode,
    ResponderSet,
    TurnContext,
)
from src.notifier import EventNotifier
from src.providers.base import ProviderError
from src.rounds import round_patch, turn_patch
from src.routing import PersonaRouter
from src.stores.base import AnalyticsRecorder, ConversationStore, MessageStore, PersonaStore

logger = logging.getLogger(__name__)

# (system_prompt, user_message, history, persona_meta) -> reply
Generate = Callable[[str, str, Sequence[dict[str, str]], dict[str, Any]], Awaitable[AgentReply]]


class Pacer(ABC):
    """Delay before each persona speaks, so replies read like a conversation."""

    @abstractmethod
    async def wait(self) -> None:
        ...


class NoPacer(Pacer):

    async def wait(self) -> None:
        return None


class RandomPacer(Pacer):
    """Sleep a uniform random interval in [min_sec, max_sec]."""

    def __init__(
        self,
        min_sec: float = 1.5,
        max_sec: float = 3.0,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if min_sec < 0 or max_sec < min_sec:
            raise ValueError(f"Invalid pacing window: {min_sec}-{max_sec}s")
        self.min_sec = min_sec
        self.max_sec = max_sec
        self._rng = rng or random.Random()
        self._sleep = sleep

    async def wait(self) -> None:
        await self._sleep(self._rng.uniform(self.min_sec, self.max_sec))


def message_payload(message: Message, persona: Persona | None = None) -> dict[str, Any]:
    """Plain-dict view of a message, as sent to listeners and API callers."""
    structured = message.structured_output
    return {
        "id": message.id,
        "conversationId": message.conversation_id,
        "role": message.role.value,
        "agentType": message.agent_type,
        "agentName": persona.name if persona else None,
        "content": message.content,
        "roundNumber": message.round_number,
        "createdAt": message.created_at.isoformat(),
        "structuredOutput": {
            "reasoning": structured.reasoning,
            "confidence": structured.confidence,
            "suggestions": list(structured.suggestions),
        } if structured else None,
    }


class TurnOrchestrator:
    """Runs message cycles against injected stores, generator, router and notifier."""

    def __init__(
        self,
        conversations: ConversationStore,
        personas: PersonaStore,
        messages: MessageStore,
        analytics: AnalyticsRecorder,
        notifier: EventNotifier,
        generate: Generate,
        router: PersonaRouter,
        classifier: IntentClassifier | None = None,
        pacer: Pacer | None = None,
        follow_up: str | None = None,
        history_limit: int | None = None,
    ) -> None:
        self._conversations = conversations
        self._personas = personas
        self._messages = messages
        self._analytics = analytics
        self._notifier = notifier
        self._generate = generate
        self._router = router
        self._classifier = classifier or IntentClassifier()
        self._pacer = pacer or NoPacer()
        self._follow_up = follow_up
        self._history_limit = history_limit
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def handle_user_message(self, conversation_id: str, text: str) -> CycleResult:
        """Run one full message cycle for ``text``.

        For callers that persisted the user message themselves. The trailing
        history entry is dropped when it is that message.

        Raises:
            ConversationNotFoundError: If the conversation does not exist.
            PersonaNotFoundError: If an active persona id is unknown.
        """
        lock = self._lock_for(conversation_id)
        async with lock:
            return await self._run_cycle(conversation_id, text or "")

    async def post_user_message(self, conversation_id: str, text: str) -> CycleResult:
        """Persist ``text`` as a user message and run its cycle, both under the conversation lock.

        History for the cycle is everything stored before that message.

        Raises:
            ConversationNotFoundError: If the conversation does not exist.
            PersonaNotFoundError: If an active persona id is unknown.
        """
        text = text or ""
        lock = self._lock_for(conversation_id)
        async with lock:
            conversation = await self._conversations.get(conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(conversation_id)
            stored = await self._messages.create_user_message(conversation, text)
            return await self._run_cycle(conversation_id, text, before_message_id=stored.id)

    async def _load(self, conversation_id: str) -> tuple[Conversation, list[Persona]]:
        conversation = await self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        ids = list(conversation.active_personas)
        found = {p.id: p for p in await self._personas.find_by_ids(ids)}
        missing = [pid for pid in ids if pid not in found]
        if missing:
            raise PersonaNotFoundError(missing)

        personas = [found[pid] for pid in ids if found[pid].is_active]
        return conversation, personas

    async def _history(
        self,
        conversation_id: str,
        text: str,
        personas: Sequence[Persona],
        before_message_id: str | None = None,
    ) -> list[dict[str, str]]:
        names = {p.id: p.name for p in personas}
        stored = await self._messages.list_by_conversation(conversation_id)
        if before_message_id is not None:
            cut = next((i for i, m in enumerate(stored) if m.id == before_message_id), len(stored))
            stored = stored[:cut]
        elif stored and stored[-1].role == MessageRole.USER and stored[-1].content == text:
            # The caller has usually stored the current message already
            stored = stored[:-1]

        history: list[dict[str, str]] = []
        for message in stored:
            entry = {"role": message.role.value, "content": message.content}
            if message.role == MessageRole.AGENT and message.agent_type:
                entry["speaker"] = names.get(message.agent_type, message.agent_type)
            history.append(entry)

        if self._history_limit:
            history = history[-self._history_limit:]
        return history

    def _with_follow_up(self, responders: ResponderSet, personas: Sequence[Persona]) -> list[Persona]:
        ordered = list(responders.responders)
        if (
            self._follow_up
            and responders.mode == ResolveMode.ROUTED
            and responders.strategy != "greeting"
            and all(p.id != self._follow_up for p in ordered)
        ):
            follow_up = next((p for p in personas if p.id == self._follow_up), None)
            if follow_up is not None:
                ordered.append(follow_up)
        return ordered

    async def _notify(self, event: str, *args: Any) -> None:
        try:
            await getattr(self._notifier, event)(*args)
        except Exception as exc:
            logger.warning("Notifier %s failed for %s: %s", event, args[0] if args else "?", exc)

    async def _run_cycle(
        self,
        conversation_id: str,
        text: str,
        before_message_id: str | None = None,
    ) -> CycleResult:
        conversation, personas = await self._load(conversation_id)
        result = CycleResult(
            conversation_id=conversation_id,
            current_round=conversation.current_round,
            status=conversation.status,
        )
        if not personas:
            logger.info("Conversation %s has no active personas, nothing to do", conversation_id)
            return result

        ctx = TurnContext(
            conversation_id=conversation_id,
            user_message=text,
            history=await self._history(conversation_id, text, personas, before_message_id),
        )

        intent = await self._classifier.classify(text)
        responders = await self._router.resolve(personas, text, intent)
        ordered = self._with_follow_up(responders, personas)
        result.mode = responders.mode
        result.strategy = responders.strategy
        logger.info(
            "Conversation %s: intent=%s, responders=%s (%s via %s)",
            conversation_id, intent.value, [p.id for p in ordered],
            responders.mode.value, responders.strategy,
        )

        roster = [p.name for p in personas]
        responder_names = [p.name for p in ordered]
        for position, persona in enumerate(ordered):
            if persona.id in ctx.responded:
                continue
            meta = {
                "name": persona.name,
                "roster": roster,
                "responders": responder_names,
                "mode": responders.mode.value,
                "role": self._role(position, persona, responders),
            }
            message, conversation = await self._respond(ctx, conversation, persona, meta)
            if message is not None:
                result.messages.append(message)

        conversation = await self._round_check(conversation, len(personas))
        result.current_round = conversation.current_round
        result.status = conversation.status
        logger.info(
            "Conversation %s: %d replies, round %d/%d, status %s",
            conversation_id, result.count, conversation.current_round,
            conversation.max_rounds, conversation.status.value,
        )
        return result

    def _role(self, position: int, persona: Persona, responders: ResponderSet) -> str:
        if responders.mode == ResolveMode.TAGGED:
            return "tagged responder"
        if position >= len(responders.responders) and persona.id == self._follow_up:
            return "follow-up"
        return "primary responder"

    async def _respond(
        self,
        ctx: TurnContext,
        conversation: Conversation,
        persona: Persona,
        meta: dict[str, Any],
    ) -> tuple[Message | None, Conversation]:
        """Let one persona speak. Returns the persisted message (or None) and the latest snapshot."""
        cid = ctx.conversation_id
        await self._notify("typing_start", cid, persona.id, persona.name)
        try:
            await self._pacer.wait()
            try:
                reply = await self._generate(persona.system_prompt, ctx.user_message, list(ctx.history), meta)
            except ProviderError as exc:
                logger.warning("Conversation %s: persona %s failed to respond: %s", cid, persona.id, exc)
                return None, conversation
            except Exception:
                logger.exception("Conversation %s: unexpected error generating for persona %s", cid, persona.id)
                return None, conversation

            if reply.silent or not reply.content.strip():
                logger.debug("Conversation %s: persona %s stayed silent", cid, persona.id)
                return None, conversation

            try:
                message = await self._messages.create_agent_message(
                    conversation, persona.id, reply.content, reply.structured_output,
                )
            except Exception:
                logger.exception("Conversation %s: could not persist reply from persona %s", cid, persona.id)
                return None, conversation
            try:
                conversation = await self._conversations.update(cid, turn_patch(conversation, persona.id))
            except Exception:
                # A stored reply must always be counted as a turn
                logger.exception("Conversation %s: could not record turn for persona %s", cid, persona.id)
                await self._discard(message)
                return None, conversation

            ctx.responded.add(persona.id)
            ctx.history.append({"role": MessageRole.AGENT.value, "content": reply.content, "speaker": persona.name})

            try:
                await self._analytics.record_tokens(cid, reply.usage.prompt_tokens, reply.usage.completion_tokens)
                await self._analytics.record_participation(cid, persona.id)
            except Exception as exc:
                logger.warning("Conversation %s: analytics failed for persona %s: %s", cid, persona.id, exc)

            await self._notify("agent_message", cid, message_payload(message, persona))
            return message, conversation
        finally:
            await self._notify("typing_stop", cid, persona.id, persona.name)

    async def _discard(self, message: Message) -> None:
        try:
            await self._messages.delete_message(message.conversation_id, message.id)
        except Exception:
            logger.exception(
                "Conversation %s: could not remove uncounted message %s",
                message.conversation_id, message.id,
            )

    async def _round_check(self, conversation: Conversation, persona_count: int) -> Conversation:
        previous_status = conversation.status
        updated = await self._conversations.update(conversation.id, round_patch(conversation, persona_count))
        if updated.status != previous_status:
            logger.info("Conversation %s is now %s", updated.id, updated.status.value)
            await self._notify("status_change", updated.id, updated.status.value)
        await self._notify("round_completed", updated.id, updated.current_round)
        return updated
