"""Real-time event contract for a conversation's listeners."""

from abc import ABC, abstractmethod
from typing import Any


class EventNotifier(ABC):
    """Publishes turn events. Transport is up to the implementation."""

    @abstractmethod
    async def typing_start(self, conversation_id: str, persona_id: str, name: str | None = None) -> None:
        ...

    @abstractmethod
    async def typing_stop(self, conversation_id: str, persona_id: str, name: str | None = None) -> None:
        ...

    @abstractmethod
    async def agent_message(self, conversation_id: str, payload: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def round_completed(self, conversation_id: str, round_number: int) -> None:
        ...

    @abstractmethod
    async def status_change(self, conversation_id: str, status: str) -> None:
        ...


class NullNotifier(EventNotifier):
    """Discards every event."""

    async def typing_start(self, conversation_id: str, persona_id: str, name: str | None = None) -> None:
        return None

    async def typing_stop(self, conversation_id: str, persona_id: str, name: str | None = None) -> None:
        return None

    async def agent_message(self, conversation_id: str, payload: dict[str, Any]) -> None:
        return None

    async def round_completed(self, conversation_id: str, round_number: int) -> None:
        return None

    async def status_change(self, conversation_id: str, status: str) -> None:
        return None
