"""Error taxonomy for the chat pipeline."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ChatError:
    """Structured error information carried by every ChatServiceError."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class ChatServiceError(Exception):
    """Base exception for chat pipeline failures with an HTTP status."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.error = ChatError(
            code=code or self.default_code,
            message=message,
            details=details or {},
        )
        super().__init__(message)


class UnauthorizedError(ChatServiceError):
    """Missing, malformed, invalid or expired bearer token."""

    status_code = 401
    default_code = "UNAUTHORIZED"

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__("Unauthorized", details=details)


class InvalidRequestError(ChatServiceError):
    status_code = 400
    default_code = "INVALID_REQUEST"


class ConversationNotFoundError(ChatServiceError):
    """Conversation does not exist or belongs to another user."""

    status_code = 404
    default_code = "CONVERSATION_NOT_FOUND"

    def __init__(self, conversation_id: str):
        super().__init__(
            "Conversation not found",
            details={"conversation_id": conversation_id},
        )


class PersistenceError(ChatServiceError):
    """Transcript store unavailable or write rejected."""

    default_code = "PERSISTENCE_ERROR"


class GatewayUnavailableError(ChatServiceError):
    """Completion endpoint could not be reached before streaming began."""

    default_code = "GATEWAY_UNAVAILABLE"


class StreamInterruptedError(ChatServiceError):
    """Completion stream failed after it had started producing deltas."""

    default_code = "STREAM_INTERRUPTED"
