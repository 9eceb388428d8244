"""Shared fixtures and in-memory collaborators for the chat pipeline tests."""
import os
import sys
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from unittest.mock import Mock

import pytest

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from config import Settings
from models.conversation import Conversation, Turn
from services.auth import Identity
from services.chat_orchestrator import ChatOrchestrator
from services.completion_gateway import DeltaStream
from services.errors import PersistenceError, UnauthorizedError

VALID_TOKEN = "valid-token"
USER_ID = "user-1"


def make_chunk(content: Optional[str], finish_reason: Optional[str] = None) -> Mock:
    """Shape of one Groq streaming chunk."""
    return Mock(choices=[Mock(delta=Mock(content=content), finish_reason=finish_reason)])


class FakeUpstream:
    """Stand-in for groq's AsyncStream: async-iterable chunks plus close()."""

    def __init__(self, texts: List[Optional[str]], fail_after: Optional[int] = None, error: Exception = None):
        self.texts = texts
        self.fail_after = fail_after
        self.error = error
        self.closed = False
        self.chunks_sent = 0

    def __aiter__(self):
        return self._chunks()

    async def _chunks(self):
        for index, text in enumerate(self.texts):
            if self.fail_after is not None and index == self.fail_after:
                raise self.error
            self.chunks_sent += 1
            yield make_chunk(text)
        if self.fail_after is not None and self.fail_after >= len(self.texts):
            raise self.error

    async def close(self):
        self.closed = True


class FakeAuth:
    def __init__(self, events: List[tuple]):
        self.events = events
        self.tokens: Dict[str, Identity] = {VALID_TOKEN: Identity(user_id=USER_ID)}

    def verify(self, token):
        self.events.append(("verify", token))
        identity = self.tokens.get(token) if token else None
        if identity is None:
            raise UnauthorizedError()
        return identity


class FakeStore:
    """In-memory transcript store recording every call in ``events``."""

    def __init__(self, events: List[tuple]):
        self.events = events
        self.conversations: Dict[str, Conversation] = {}
        self.turns: List[Turn] = []
        self.fail_create = False
        self.fail_append_roles: set = set()
        self.fail_list_recent = False
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._ids = 0

    def _next_id(self, prefix: str) -> str:
        self._ids += 1
        return f"{prefix}-{self._ids}"

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def add_conversation(self, owner_id: str, title: str = "Existing") -> str:
        conversation_id = self._next_id("conv")
        self.conversations[conversation_id] = Conversation(
            conversation_id=conversation_id,
            owner_id=owner_id,
            title=title,
            created_at=self._tick(),
        )
        return conversation_id

    def add_turn(self, conversation_id: str, role: str, content: str) -> Turn:
        turn = Turn(
            turn_id=self._next_id("turn"),
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=self._tick(),
        )
        self.turns.append(turn)
        return turn

    def create_conversation(self, owner_id, title):
        self.events.append(("create_conversation", owner_id, title))
        if self.fail_create:
            raise PersistenceError("Could not create conversation.")
        conversation_id = self._next_id("conv")
        self.conversations[conversation_id] = Conversation(
            conversation_id=conversation_id,
            owner_id=owner_id,
            title=title,
            created_at=self._tick(),
        )
        return conversation_id

    def get_conversation(self, conversation_id):
        self.events.append(("get_conversation", conversation_id))
        return self.conversations.get(conversation_id)

    def append_turn(self, conversation_id, role, content):
        self.events.append(("append_turn", role, content))
        if role in self.fail_append_roles:
            raise PersistenceError(f"Could not save {role} message.")
        return self.add_turn(conversation_id, role, content).turn_id

    def list_recent_turns(self, conversation_id, limit):
        self.events.append(("list_recent_turns", conversation_id, limit))
        if self.fail_list_recent:
            raise PersistenceError("Could not fetch chat history.")
        turns = [t for t in self.turns if t.conversation_id == conversation_id]
        return turns[-limit:]

    def list_turns(self, conversation_id):
        self.events.append(("list_turns", conversation_id))
        return [t for t in self.turns if t.conversation_id == conversation_id]

    def touch_conversation(self, conversation_id):
        self.events.append(("touch_conversation", conversation_id))

    def list_conversations(self, owner_id):
        self.events.append(("list_conversations", owner_id))
        return [c for c in self.conversations.values() if c.owner_id == owner_id]

    def turns_with_role(self, role: str) -> List[Turn]:
        return [t for t in self.turns if t.role == role]


class FakeGateway:
    """Returns a real DeltaStream over a FakeUpstream; or raises ``error``."""

    def __init__(self, events: List[tuple]):
        self.events = events
        self.texts: List[Optional[str]] = ["I hear you. ", "What's been ", "weighing on you?"]
        self.fail_after: Optional[int] = None
        self.stream_error: Optional[Exception] = None
        self.error: Optional[Exception] = None
        self.calls: List[tuple] = []
        self.upstream: Optional[FakeUpstream] = None

    async def stream_completion(self, messages, model_id):
        self.events.append(("stream_completion", model_id))
        self.calls.append((list(messages), model_id))
        if self.error is not None:
            raise self.error
        self.upstream = FakeUpstream(self.texts, self.fail_after, self.stream_error)
        return DeltaStream(self.upstream, model_id, time.time())


@pytest.fixture
def settings():
    return Settings(groq_api_key="test_key", chat_model="llama-3.3-70b-versatile", history_limit=10)


@pytest.fixture
def events():
    return []


@pytest.fixture
def auth(events):
    return FakeAuth(events)


@pytest.fixture
def store(events):
    return FakeStore(events)


@pytest.fixture
def gateway(events):
    return FakeGateway(events)


@pytest.fixture
def orchestrator(settings, auth, store, gateway):
    return ChatOrchestrator(settings=settings, auth=auth, store=store, gateway=gateway)


@pytest.fixture
def upstream_factory():
    return FakeUpstream
