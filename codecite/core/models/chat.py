"""Chat domain models."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .document import Citation


def new_message_id() -> str:
    return f"msg-{uuid.uuid4().hex[:12]}"


@dataclass
class MessageMetadata:
    """Timing and confidence attached to an assistant message."""
    processing_time: int = 0  # milliseconds
    tokens_used: Optional[int] = None
    confidence: Optional[float] = None


@dataclass
class ChatMessage:
    """Chat message."""
    role: str  # "user" | "assistant" | "system"
    content: str
    id: str = field(default_factory=new_message_id)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    citations: list[Citation] = field(default_factory=list)
    metadata: MessageMetadata = field(default_factory=MessageMetadata)


@dataclass
class ChatHistory:
    """Chat history with limit."""
    messages: list[ChatMessage] = field(default_factory=list)
    max_messages: int = 10

    def add(self, message: ChatMessage) -> None:
        """Add message to history."""
        self.messages.append(message)
        if len(self.messages) > self.max_messages:
            self.messages = self.messages[-self.max_messages:]

    def add_pair(self, user_content: str, assistant_content: str) -> None:
        """Add user/assistant message pair."""
        self.add(ChatMessage(role="user", content=user_content))
        self.add(ChatMessage(role="assistant", content=assistant_content))

    def recent(self, turns: int) -> list[ChatMessage]:
        """Most recent messages, oldest first."""
        if turns <= 0:
            return []
        return self.messages[-turns:]


@dataclass
class GenerationResult:
    """Output of a generation backend call."""
    content: str
    citations: list[Citation] = field(default_factory=list)
    confidence: Optional[float] = None
    tokens_used: Optional[int] = None
    processing_time: int = 0
