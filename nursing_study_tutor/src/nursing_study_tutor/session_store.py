"""
Session Store

Persists chat sessions and their messages in Supabase
(`chat_sessions` / `chat_messages`). Without a client it keeps the same
data in memory, which is what tests and local runs use.

The store is append-only from the client's point of view: messages are
never edited or reordered once written.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from nursing_study_tutor.content_models import TutorReply
from nursing_study_tutor.errors import PersistenceError, SessionNotFoundError
from nursing_study_tutor.session_state import TUTOR_ROLE, USER_ROLE, ChatMessage, ChatSession

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "chat_sessions"
MESSAGES_TABLE = "chat_messages"

# chat_messages.sender values
_SENDER_FOR_ROLE = {USER_ROLE: "user", TUTOR_ROLE: "ai"}


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def reply_from_metadata(metadata: Dict[str, Any]) -> Optional[TutorReply]:
    """Typed view of a persisted tutor payload, or None if it no longer parses."""
    if not metadata:
        return None
    try:
        return TutorReply.model_validate(metadata)
    except PydanticValidationError as e:
        logger.debug(f"[SessionStore] Stored tutor metadata did not parse: {e.error_count()} error(s)")
        return None


class SessionStore:
    """
    Chat persistence backed by Supabase, with an in-memory fallback.

    All client failures surface as PersistenceError so callers can decide
    whether they are fatal.
    """

    def __init__(self, supabase_client=None):
        """
        Initialize SessionStore.

        Args:
            supabase_client: Supabase client instance (optional)
        """
        self.supabase = supabase_client
        self.use_supabase = supabase_client is not None

        self._sessions: Dict[str, ChatSession] = {}
        self._messages: Dict[str, List[ChatMessage]] = {}

        if not self.use_supabase:
            logger.warning("⚠️ [SessionStore] Supabase not configured, using in-memory storage")

    # ==================== Row mapping ====================

    @staticmethod
    def row_to_session(row: Dict[str, Any]) -> ChatSession:
        return ChatSession(
            id=str(row["id"]),
            user_id=str(row.get("user_id", "")),
            title=row.get("title") or "Untitled Session",
            created_at=_parse_timestamp(row.get("created_at")),
        )

    @staticmethod
    def row_to_message(row: Dict[str, Any]) -> ChatMessage:
        role = USER_ROLE if row.get("sender") == "user" else TUTOR_ROLE
        metadata = row.get("metadata") or {}
        return ChatMessage(
            id=str(row["id"]),
            role=role,
            content=row.get("message") or "",
            session_id=str(row.get("session_id")) if row.get("session_id") else None,
            metadata=metadata,
            reply=reply_from_metadata(metadata) if role == TUTOR_ROLE else None,
            created_at=_parse_timestamp(row.get("timestamp")),
        )

    # ==================== Operations ====================

    async def create_session(self, user_id: str, title: str) -> ChatSession:
        """Create a session row and return it with its store-assigned id."""
        if not self.use_supabase:
            session = ChatSession(
                id=str(uuid.uuid4()),
                user_id=user_id,
                title=title,
                created_at=datetime.now(timezone.utc),
            )
            self._sessions[session.id] = session
            self._messages[session.id] = []
            return session

        try:
            result = self.supabase.table(SESSIONS_TABLE) \
                .insert({"user_id": user_id, "title": title}) \
                .execute()
        except Exception as e:
            raise PersistenceError(f"Could not create chat session: {e}") from e

        if not result.data:
            raise PersistenceError("Chat session insert returned no row")
        session = self.row_to_session(result.data[0])
        logger.info(f"💾 [SessionStore] Created session {session.id}")
        return session

    async def get_session(self, session_id: str) -> ChatSession:
        """
        Look up one session row.

        Raises:
            SessionNotFoundError: no session with that id
            PersistenceError: the store could not be read
        """
        if not self.use_supabase:
            if session_id not in self._sessions:
                raise SessionNotFoundError(f"Unknown chat session: {session_id}")
            return self._sessions[session_id]

        try:
            result = self.supabase.table(SESSIONS_TABLE) \
                .select('*') \
                .eq('id', session_id) \
                .execute()
        except Exception as e:
            raise PersistenceError(f"Could not load chat session: {e}") from e

        if not result.data:
            raise SessionNotFoundError(f"Unknown chat session: {session_id}")
        return self.row_to_session(result.data[0])

    async def list_sessions(self, user_id: str) -> List[ChatSession]:
        """Sessions for a user, newest first."""
        if not self.use_supabase:
            owned = [s for s in self._sessions.values() if s.user_id == user_id]
            # dict order is creation order; reverse it for ties on created_at
            return sorted(reversed(owned), key=lambda s: s.created_at, reverse=True)

        try:
            result = self.supabase.table(SESSIONS_TABLE) \
                .select('*') \
                .eq('user_id', user_id) \
                .order('created_at', desc=True) \
                .execute()
        except Exception as e:
            raise PersistenceError(f"Could not list chat sessions: {e}") from e
        return [self.row_to_session(row) for row in (result.data or [])]

    async def append_message(
        self,
        session_id: str,
        user_id: str,
        text: str,
        role: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChatMessage:
        """
        Append one message to a session.

        Args:
            session_id: Store id of the session
            user_id: Owning user
            text: Raw message text
            role: "user" or "tutor"
            metadata: Opaque payload, stored and returned untouched
        """
        if role not in _SENDER_FOR_ROLE:
            raise ValueError(f"Unknown message role: {role!r}")
        metadata = dict(metadata or {})

        if not self.use_supabase:
            if session_id not in self._sessions:
                raise PersistenceError(f"Unknown chat session: {session_id}")
            message = ChatMessage(
                id=str(uuid.uuid4()),
                role=role,
                content=text,
                session_id=session_id,
                metadata=metadata,
                reply=reply_from_metadata(metadata) if role == TUTOR_ROLE else None,
                created_at=datetime.now(timezone.utc),
            )
            self._messages[session_id].append(message)
            return message

        try:
            result = self.supabase.table(MESSAGES_TABLE).insert({
                "session_id": session_id,
                "user_id": user_id,
                "message": text,
                "sender": _SENDER_FOR_ROLE[role],
                "metadata": metadata,
            }).execute()
        except Exception as e:
            raise PersistenceError(f"Could not save chat message: {e}") from e

        if not result.data:
            raise PersistenceError("Chat message insert returned no row")
        return self.row_to_message(result.data[0])

    async def get_history(self, session_id: str) -> List[ChatMessage]:
        """All messages of a session, oldest first."""
        if not self.use_supabase:
            if session_id not in self._sessions:
                raise SessionNotFoundError(f"Unknown chat session: {session_id}")
            return list(self._messages[session_id])

        try:
            result = self.supabase.table(MESSAGES_TABLE) \
                .select('*') \
                .eq('session_id', session_id) \
                .order('timestamp', desc=False) \
                .execute()
        except Exception as e:
            raise PersistenceError(f"Could not load chat history: {e}") from e
        return [self.row_to_message(row) for row in (result.data or [])]
