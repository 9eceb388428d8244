"""Data models for the Bloom chat backend."""
from .conversation import (
    Conversation,
    Turn,
    derive_title,
    ROLE_SYSTEM,
    ROLE_USER,
    ROLE_ASSISTANT,
    STATUS_ACTIVE,
)
from .chat import PromptMessage, ContentDelta, StreamMetadata
from .api import ChatRequest, ErrorResponse, ConversationSummary, MessageOut

__all__ = [
    "Conversation",
    "Turn",
    "derive_title",
    "ROLE_SYSTEM",
    "ROLE_USER",
    "ROLE_ASSISTANT",
    "STATUS_ACTIVE",
    "PromptMessage",
    "ContentDelta",
    "StreamMetadata",
    "ChatRequest",
    "ErrorResponse",
    "ConversationSummary",
    "MessageOut",
]
