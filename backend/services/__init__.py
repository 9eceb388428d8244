"""Services for the Bloom chat backend."""
from .errors import (
    ChatError,
    ChatServiceError,
    UnauthorizedError,
    InvalidRequestError,
    ConversationNotFoundError,
    PersistenceError,
    GatewayUnavailableError,
    StreamInterruptedError,
)
from .auth import Identity, SupabaseAuthVerifier
from .transcript_store import TranscriptStore
from .prompt_assembler import THERAPIST_PERSONA, assemble
from .stream_relay import relay, encode_metadata_frame
from .completion_gateway import CompletionGateway, DeltaStream
from .chat_orchestrator import ChatOrchestrator, ChatStream

__all__ = [
    'ChatError', 'ChatServiceError', 'UnauthorizedError', 'InvalidRequestError',
    'ConversationNotFoundError', 'PersistenceError', 'GatewayUnavailableError',
    'StreamInterruptedError', 'Identity', 'SupabaseAuthVerifier', 'TranscriptStore',
    'THERAPIST_PERSONA', 'assemble', 'relay', 'encode_metadata_frame',
    'CompletionGateway', 'DeltaStream', 'ChatOrchestrator', 'ChatStream',
]
