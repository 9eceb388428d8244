"""Conversation data models."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from config import TITLE_MAX_LENGTH

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

STATUS_ACTIVE = "active"


@dataclass(frozen=True)
class Turn:
    """Represents a single message (user or assistant) in a conversation."""
    turn_id: str
    conversation_id: str
    role: str
    content: str
    created_at: datetime


@dataclass(frozen=True)
class Conversation:
    """Represents a conversation owned by one user."""
    conversation_id: str
    owner_id: str
    title: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    status: str = STATUS_ACTIVE


def derive_title(message: str, limit: int = TITLE_MAX_LENGTH) -> str:
    """Title a new conversation after its first message."""
    if len(message) <= limit:
        return message
    return message[:limit] + "..."
