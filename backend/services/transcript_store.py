"""Transcript store for conversations and turns, backed by Supabase PostgreSQL."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from supabase import Client

from models.conversation import Conversation, Turn, STATUS_ACTIVE
from services.errors import PersistenceError

logger = logging.getLogger(__name__)

CONVERSATIONS_TABLE = "conversations"
MESSAGES_TABLE = "messages"
TURN_COLUMNS = "id, conversation_id, role, content, created_at"


class TranscriptStore:
    """Append-only record of conversation turns, keyed by conversation id."""

    def __init__(self, client: Client):
        """
        Initialize the store with a Supabase client.

        Args:
            client: Supabase client built once at startup and shared with auth
        """
        self.client = client
        logger.info("TranscriptStore initialized with Supabase")

    def create_conversation(self, owner_id: str, title: str) -> str:
        """
        Create a conversation owned by ``owner_id``.

        Returns:
            The new conversation id

        Raises:
            PersistenceError: Insert failed or returned no row
        """
        try:
            result = self.client.table(CONVERSATIONS_TABLE).insert({
                "user_id": owner_id,
                "title": title,
                "status": STATUS_ACTIVE,
            }).execute()
        except Exception as e:
            logger.error(f"Error creating conversation for user {owner_id}: {e}")
            raise PersistenceError("Could not create conversation.") from e

        if not result.data:
            logger.error(f"Create conversation for user {owner_id} returned no row")
            raise PersistenceError("Could not create conversation.")

        conversation_id = str(result.data[0]["id"])
        logger.info(
            f"Created new conversation: {conversation_id}",
            extra={"conversation_id": conversation_id},
        )
        return conversation_id

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Fetch one conversation, or None if it does not exist."""
        try:
            result = (
                self.client.table(CONVERSATIONS_TABLE)
                .select("*")
                .eq("id", conversation_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error retrieving conversation {conversation_id}: {e}")
            raise PersistenceError("Could not load conversation.") from e

        if not result.data:
            return None
        return self._to_conversation(result.data[0])

    def append_turn(self, conversation_id: str, role: str, content: str) -> str:
        """
        Append a turn to a conversation.

        Returns:
            The new turn id

        Raises:
            PersistenceError: Insert failed or returned no row
        """
        try:
            result = self.client.table(MESSAGES_TABLE).insert({
                "conversation_id": conversation_id,
                "role": role,
                "content": content,
            }).execute()
        except Exception as e:
            logger.error(f"Error adding {role} turn to conversation {conversation_id}: {e}")
            raise PersistenceError(f"Could not save {role} message.") from e

        if not result.data:
            raise PersistenceError(f"Could not save {role} message.")

        turn_id = str(result.data[0]["id"])
        logger.info(
            f"Added {role} turn {turn_id} to conversation {conversation_id}",
            extra={"conversation_id": conversation_id},
        )
        return turn_id

    def list_recent_turns(self, conversation_id: str, limit: int) -> List[Turn]:
        """
        Fetch the ``limit`` most recent turns, oldest first.

        Raises:
            PersistenceError: Query failed
        """
        try:
            result = (
                self.client.table(MESSAGES_TABLE)
                .select(TURN_COLUMNS)
                .eq("conversation_id", conversation_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error retrieving turns for conversation {conversation_id}: {e}")
            raise PersistenceError("Could not fetch chat history.") from e

        # Newest first from the query; callers want chronological order
        turns = [self._to_turn(row) for row in (result.data or [])]
        turns.reverse()
        logger.debug(f"Retrieved {len(turns)} recent turns for conversation {conversation_id}")
        return turns

    def list_turns(self, conversation_id: str) -> List[Turn]:
        """All turns of a conversation, oldest first."""
        try:
            result = (
                self.client.table(MESSAGES_TABLE)
                .select(TURN_COLUMNS)
                .eq("conversation_id", conversation_id)
                .order("created_at", desc=False)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error retrieving turns for conversation {conversation_id}: {e}")
            raise PersistenceError("Failed to fetch messages.") from e

        return [self._to_turn(row) for row in (result.data or [])]

    def touch_conversation(self, conversation_id: str) -> None:
        """Bump ``updated_at`` so the conversation sorts first in listings."""
        try:
            self.client.table(CONVERSATIONS_TABLE).update({
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }).eq("id", conversation_id).execute()
        except Exception as e:
            logger.error(f"Error updating timestamp of conversation {conversation_id}: {e}")
            raise PersistenceError("Could not update conversation.") from e

    def list_conversations(self, owner_id: str) -> List[Conversation]:
        """Active conversations of a user, most recently updated first."""
        try:
            result = (
                self.client.table(CONVERSATIONS_TABLE)
                .select("*")
                .eq("user_id", owner_id)
                .eq("status", STATUS_ACTIVE)
                .order("updated_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing conversations for user {owner_id}: {e}")
            raise PersistenceError("Could not fetch conversations.") from e

        return [self._to_conversation(row) for row in (result.data or [])]

    def _to_turn(self, row: Dict[str, Any]) -> Turn:
        return Turn(
            turn_id=str(row["id"]),
            conversation_id=str(row["conversation_id"]),
            role=row["role"],
            content=row["content"],
            created_at=self._parse_timestamp(row["created_at"]),
        )

    def _to_conversation(self, row: Dict[str, Any]) -> Conversation:
        updated_at = row.get("updated_at")
        return Conversation(
            conversation_id=str(row["id"]),
            owner_id=str(row["user_id"]),
            title=row.get("title") or "",
            created_at=self._parse_timestamp(row["created_at"]),
            updated_at=self._parse_timestamp(updated_at) if updated_at else None,
            status=row.get("status") or STATUS_ACTIVE,
        )

    def _parse_timestamp(self, timestamp_str: str) -> datetime:
        """
        Parse timestamp string from Supabase, handling various formats.

        Supabase can return timestamps with varying microsecond precision,
        which Python's fromisoformat() can't always handle. This method
        normalizes the fractional part to six digits.

        Args:
            timestamp_str: Timestamp string from Supabase

        Returns:
            datetime object
        """
        # Replace 'Z' with '+00:00' for timezone
        timestamp_str = timestamp_str.replace("Z", "+00:00")

        # Format: 2026-02-21T02:08:26.18976+00:00
        if "." in timestamp_str:
            head, fraction = timestamp_str.split(".", 1)
            tz = ""
            for sign in ("+", "-"):
                if sign in fraction:
                    fraction, tz_part = fraction.split(sign, 1)
                    tz = sign + tz_part
                    break
            fraction = fraction[:6].ljust(6, "0")
            timestamp_str = f"{head}.{fraction}{tz}"

        return datetime.fromisoformat(timestamp_str)
