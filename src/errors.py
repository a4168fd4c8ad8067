"""Errors surfaced to callers of the turn pipeline."""


class BoardroomError(Exception):
    """Base class for boardroom errors."""


class ConversationNotFoundError(BoardroomError):
    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class PersonaNotFoundError(BoardroomError):
    def __init__(self, persona_ids: list[str]) -> None:
        self.persona_ids = persona_ids
        super().__init__(f"Persona(s) not found: {', '.join(persona_ids)}")
