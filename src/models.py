"""Pure dataclasses for the boardroom turn pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class MessageRole(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class ResolveMode(str, Enum):
    TAGGED = "tagged"      # exclusive @mention override
    ROUTED = "routed"      # picked by a routing strategy


@dataclass(frozen=True)
class Persona:
    id: str
    name: str
    description: str
    system_prompt: str
    capabilities: frozenset[str] = frozenset()
    is_active: bool = True
    color: str | None = None
    icon: str | None = None


@dataclass(frozen=True)
class Conversation:
    id: str
    active_personas: tuple[str, ...]
    max_rounds: int = 3
    current_round: int = 0
    turn_index: int = 0
    current_speaker: str | None = None
    status: ConversationStatus = ConversationStatus.ACTIVE
    title: str = "New Conversation"
    context: str | None = None


@dataclass(frozen=True)
class StructuredOutput:
    reasoning: str = ""
    confidence: float = 0.0
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True)
class Message:
    id: str
    conversation_id: str
    role: MessageRole
    content: str
    round_number: int
    created_at: datetime
    agent_type: str | None = None  # persona id for agent messages
    structured_output: StructuredOutput | None = None


@dataclass
class TurnContext:
    conversation_id: str
    user_message: str
    history: list[dict[str, str]] = field(default_factory=list)
    responded: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass(frozen=True)
class AgentReply:
    content: str
    structured_output: StructuredOutput = StructuredOutput()
    usage: TokenUsage = TokenUsage()
    silent: bool = False


@dataclass(frozen=True)
class ResponderSet:
    responders: tuple[Persona, ...]
    mode: ResolveMode
    strategy: str  # name of the resolver that produced the set


@dataclass
class CycleResult:
    conversation_id: str
    messages: list[Message] = field(default_factory=list)
    current_round: int = 0
    status: ConversationStatus = ConversationStatus.ACTIVE
    mode: ResolveMode | None = None
    strategy: str | None = None

    @property
    def count(self) -> int:
        return len(self.messages)
