"""Round/turn bookkeeping. Pure functions that compute conversation patches."""

from typing import Any

from src.models import Conversation, ConversationStatus


def compute_round(turn_index: int, persona_count: int) -> int:
    """A round is one nominal turn per active persona."""
    if persona_count <= 0:
        return 0
    return turn_index // persona_count


def turn_patch(conversation: Conversation, persona_id: str) -> dict[str, Any]:
    """Patch applied after a persona's reply has been persisted."""
    return {
        "turn_index": conversation.turn_index + 1,
        "current_speaker": persona_id,
    }


def round_patch(conversation: Conversation, persona_count: int) -> dict[str, Any]:
    """Patch applied at the end of a message cycle.

    The round never decreases and COMPLETED never reverts.
    """
    current_round = max(
        conversation.current_round,
        compute_round(conversation.turn_index, persona_count),
    )
    status = conversation.status
    if status == ConversationStatus.ACTIVE and current_round >= conversation.max_rounds:
        status = ConversationStatus.COMPLETED
    return {
        "current_round": current_round,
        "status": status,
        "current_speaker": None,
    }
