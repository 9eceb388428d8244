"""Per-request coordination of the streaming therapist chat."""
import functools
import logging
import time
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from starlette.concurrency import run_in_threadpool

from config import Settings
from logger import preview
from models.chat import StreamMetadata
from models.conversation import Conversation, Turn, derive_title, ROLE_USER, ROLE_ASSISTANT
from services.auth import Identity, SupabaseAuthVerifier
from services.completion_gateway import CompletionGateway, DeltaStream
from services.errors import (
    ConversationNotFoundError,
    InvalidRequestError,
    PersistenceError,
    StreamInterruptedError,
)
from services.prompt_assembler import THERAPIST_PERSONA, assemble
from services.stream_relay import relay
from services.transcript_store import TranscriptStore

logger = logging.getLogger(__name__)


class ChatStream:
    """
    Outbound frames for one chat request.

    Iterating yields the metadata frame and then the reply text as it
    arrives. When the upstream completes, the reply is handed to
    ``on_complete`` before iteration ends. An interrupted upstream ends
    the iteration early and quietly; closing the iterator early tears the
    upstream down. Neither case calls ``on_complete``.
    """

    def __init__(
        self,
        metadata: StreamMetadata,
        deltas: DeltaStream,
        on_complete: Callable[[str], Awaitable[None]],
    ):
        self.metadata = metadata
        self.deltas = deltas
        self.on_complete = on_complete
        self.completed = False
        self.interrupted = False
        self.frames_sent = 0

    def __aiter__(self) -> AsyncIterator[str]:
        return self._frames()

    async def _frames(self) -> AsyncIterator[str]:
        reply_parts: List[str] = []
        try:
            async with aclosing(relay(self.metadata, self.deltas)) as frames:
                async for frame in frames:
                    if self.frames_sent:
                        reply_parts.append(frame)
                    self.frames_sent += 1
                    yield frame
            self.completed = True
        except StreamInterruptedError as e:
            self.interrupted = True
            logger.warning(
                f"Stream interrupted after {self.frames_sent} frames: {e.error.message}",
                extra={
                    "conversation_id": self.metadata.conversation_id,
                    "frames": self.frames_sent,
                    "error_code": e.error.code,
                    "error_details": e.error.details,
                },
            )
        finally:
            await self.deltas.aclose()

        if self.completed:
            await self.on_complete("".join(reply_parts))


class ChatOrchestrator:
    """Coordinates auth, transcript persistence, prompt assembly and streaming."""

    def __init__(
        self,
        settings: Settings,
        auth: SupabaseAuthVerifier,
        store: TranscriptStore,
        gateway: CompletionGateway,
        persona: str = THERAPIST_PERSONA,
    ):
        self.settings = settings
        self.auth = auth
        self.store = store
        self.gateway = gateway
        self.persona = persona

    async def authenticate(self, auth_token: Optional[str]) -> Identity:
        return await run_in_threadpool(self.auth.verify, auth_token)

    async def handle(
        self,
        auth_token: Optional[str],
        message: str,
        conversation_id: Optional[str] = None,
        tone: Optional[str] = None,
    ) -> ChatStream:
        """
        Run one chat request up to the point where streaming can begin.

        Steps run strictly in order: authenticate, resolve the conversation,
        persist the user turn, fetch history, open the completion stream.
        Any failure here is raised before the caller has sent a byte.

        Args:
            auth_token: Bearer token from the request
            message: The user's message
            conversation_id: Conversation to continue, or None to start one
            tone: Preferred therapy tone for the persona

        Returns:
            ChatStream to be relayed to the caller

        Raises:
            UnauthorizedError: Token rejected
            InvalidRequestError: Blank message
            ConversationNotFoundError: Unknown or foreign conversation id
            PersistenceError: Conversation or user turn could not be stored
            GatewayUnavailableError: Completion endpoint unreachable
        """
        start_time = time.time()

        identity = await self.authenticate(auth_token)

        if not message or not message.strip():
            raise InvalidRequestError("Message is required")

        logger.info(f"Processing chat message for user {identity.user_id}: {preview(message)}")

        conversation_id = await self._resolve_conversation(identity, message, conversation_id)

        # The model is never called without a durably recorded user message
        user_turn_id = await run_in_threadpool(
            self.store.append_turn, conversation_id, ROLE_USER, message
        )

        history = await self._fetch_history(conversation_id, user_turn_id)
        prompt = assemble(self.persona, history, message, tone)

        deltas = await self.gateway.stream_completion(prompt, self.settings.chat_model)

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Streaming reply for conversation {conversation_id} "
            f"(history={len(history)} turns, setup={latency_ms}ms)",
            extra={
                "conversation_id": conversation_id,
                "user_turn_id": user_turn_id,
                "latency_ms": latency_ms,
            },
        )

        return ChatStream(
            metadata=StreamMetadata(conversation_id=conversation_id, user_message_id=user_turn_id),
            deltas=deltas,
            on_complete=functools.partial(self._persist_reply, conversation_id),
        )

    async def list_conversations(self, auth_token: Optional[str]) -> List[Conversation]:
        identity = await self.authenticate(auth_token)
        return await run_in_threadpool(self.store.list_conversations, identity.user_id)

    async def list_turns(self, auth_token: Optional[str], conversation_id: str) -> List[Turn]:
        identity = await self.authenticate(auth_token)
        await self._load_owned_conversation(identity, conversation_id)
        return await run_in_threadpool(self.store.list_turns, conversation_id)

    async def _resolve_conversation(
        self,
        identity: Identity,
        message: str,
        conversation_id: Optional[str],
    ) -> str:
        if conversation_id:
            conversation = await self._load_owned_conversation(identity, conversation_id)
            return conversation.conversation_id

        return await run_in_threadpool(
            self.store.create_conversation, identity.user_id, derive_title(message)
        )

    async def _load_owned_conversation(self, identity: Identity, conversation_id: str) -> Conversation:
        conversation = await run_in_threadpool(self.store.get_conversation, conversation_id)
        if conversation is None or conversation.owner_id != identity.user_id:
            logger.warning(
                f"Conversation {conversation_id} not found for user {identity.user_id}",
                extra={"conversation_id": conversation_id},
            )
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def _fetch_history(self, conversation_id: str, user_turn_id: str) -> List[Turn]:
        """
        Up to ``history_limit`` turns preceding the user turn just written.

        One extra row is requested so the just-written turn can be dropped
        without shrinking the window. A failed read degrades to no history.
        """
        limit = self.settings.history_limit
        try:
            turns = await run_in_threadpool(
                self.store.list_recent_turns, conversation_id, limit + 1
            )
        except PersistenceError as e:
            logger.warning(
                f"Proceeding without history for conversation {conversation_id}: {e}",
                extra={"conversation_id": conversation_id},
            )
            return []

        prior = [turn for turn in turns if turn.turn_id != user_turn_id]
        return prior[-limit:] if limit > 0 else []

    async def _persist_reply(self, conversation_id: str, reply: str) -> None:
        if not reply.strip():
            logger.warning(
                f"Empty reply for conversation {conversation_id}; nothing persisted",
                extra={"conversation_id": conversation_id},
            )
            return

        # The reply has already been delivered, so failures here are only logged
        try:
            await run_in_threadpool(self.store.append_turn, conversation_id, ROLE_ASSISTANT, reply)
            await run_in_threadpool(self.store.touch_conversation, conversation_id)
        except PersistenceError as e:
            logger.error(
                f"Failed to persist assistant reply for conversation {conversation_id}: {e}",
                extra={
                    "conversation_id": conversation_id,
                    "error_code": e.error.code,
                },
            )
