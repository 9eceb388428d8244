"""Ephemeral chat pipeline models: prompt messages, deltas and stream metadata."""
from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class PromptMessage:
    """Role-tagged entry of a completion request."""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ContentDelta:
    """Incremental fragment of model-generated text."""
    text: str


@dataclass(frozen=True)
class StreamMetadata:
    """Correlation ids sent to the caller before any model output."""
    conversation_id: str
    user_message_id: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "conversationId": self.conversation_id,
            "userMessageId": self.user_message_id,
        }
