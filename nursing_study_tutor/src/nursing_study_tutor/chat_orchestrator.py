"""
Chat Orchestrator

Owns the active chat session for one user view. Split in two layers:

1. Pure state transitions (module functions): given a ChatState and an
   event, return the next ChatState. No I/O, testable without mocks.
2. ChatOrchestrator: runs the turn protocol, calling the gateway and the
   session store around those transitions.

Turn protocol:
  create session lazily -> add user message locally -> persist it ->
  build history window from prior messages -> generate -> add + persist
  tutor reply (or add an unpersisted error placeholder on failure).
"""

import logging
import uuid
from dataclasses import replace
from typing import List, Optional, Sequence

from nursing_study_tutor.config import TutorConfig
from nursing_study_tutor.errors import (
    GenerationError,
    PersistenceError,
    PreconditionError,
    SessionBusyError,
    SessionNotFoundError,
)
from nursing_study_tutor.session_state import (
    TUTOR_ROLE,
    USER_ROLE,
    ChatMessage,
    ChatSession,
    ChatState,
    MessageView,
    TurnSummary,
)

logger = logging.getLogger(__name__)

ERROR_PLACEHOLDER_TEXT = (
    "I encountered a protocol error. Please try again or re-initialize the session."
)
UNSAVED_MESSAGE_WARNING = (
    "This message could not be saved and may be missing when the session is reloaded."
)
UNSAVED_SESSION_WARNING = (
    "The conversation could not be saved yet; it will be retried with your next message."
)


def _new_message_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


# ==================== Pure transitions ====================

def begin_turn(state: ChatState) -> ChatState:
    return replace(state, in_flight=True)


def end_turn(state: ChatState) -> ChatState:
    return replace(state, in_flight=False)


def attach_session(state: ChatState, session_id: str) -> ChatState:
    return replace(state, session_id=session_id)


def add_user_message(state: ChatState, message: ChatMessage) -> ChatState:
    if message.role != USER_ROLE or message.reply is not None:
        raise ValueError("User messages never carry a structured payload")
    return replace(state, messages=state.messages + [message])


def add_tutor_reply(state: ChatState, message: ChatMessage) -> ChatState:
    if message.role != TUTOR_ROLE or message.reply is None:
        raise ValueError("Tutor replies must carry a structured payload")
    views = dict(state.views)
    views[message.id] = MessageView.OVERVIEW
    return replace(state, messages=state.messages + [message], views=views)


def add_error_placeholder(state: ChatState) -> ChatState:
    placeholder = ChatMessage(
        id=_new_message_id("error"),
        role=TUTOR_ROLE,
        content=ERROR_PLACEHOLDER_TEXT,
        session_id=state.session_id,
        is_error=True,
    )
    return replace(state, messages=state.messages + [placeholder])


def drop_trailing_error(state: ChatState) -> ChatState:
    if state.messages and state.messages[-1].is_error:
        return replace(state, messages=state.messages[:-1])
    return state


def add_warning(state: ChatState, warning: str) -> ChatState:
    return replace(state, warnings=state.warnings + [warning])


def select_view(state: ChatState, message_id: str, view: MessageView) -> ChatState:
    views = dict(state.views)
    views[message_id] = view
    return replace(state, views=views)


def restore(session_id: str, messages: Sequence[ChatMessage]) -> ChatState:
    """Rebuild local state from stored history; every tutor view starts on overview."""
    views = {m.id: MessageView.OVERVIEW for m in messages if m.is_tutor}
    return ChatState(session_id=session_id, messages=list(messages), views=views)


def reset() -> ChatState:
    return ChatState()


def build_history_window(messages: Sequence[ChatMessage], limit: int) -> List[TurnSummary]:
    """Last `limit` real messages as {role, content}; error placeholders are skipped."""
    if limit <= 0:
        return []
    turns = [m.summary() for m in messages if not m.is_error]
    return turns[-limit:]


# ==================== Orchestrator ====================

class ChatOrchestrator:
    """
    Runs tutor chat turns for one user.

    Only one generation call may be outstanding; a second send while one is
    in flight raises SessionBusyError (the UI disables the input instead of
    queueing). Results of a call that outlives its view (new session or a
    restored one) are discarded.
    """

    def __init__(self, gateway, store, user_id: str, config: Optional[TutorConfig] = None):
        """
        Initialize the orchestrator.

        Args:
            gateway: ContentGateway (or a fake with generate_tutor_reply)
            store: SessionStore
            user_id: Owning user
            config: Tunables; history window and title length are used here
        """
        self.gateway = gateway
        self.store = store
        self.user_id = user_id
        self.config = config or TutorConfig.from_env()
        self.state = ChatState()
        self._failed_question: Optional[str] = None
        self._epoch = 0

    @property
    def in_flight(self) -> bool:
        return self.state.in_flight

    @property
    def messages(self) -> List[ChatMessage]:
        return self.state.messages

    # ---------- turn protocol ----------

    async def send(self, text: str) -> Optional[ChatMessage]:
        """
        Send a question and return the tutor message (or the error placeholder).

        Returns None for blank input. Re-sending the text of a failed turn
        retries it instead of adding a second user message.
        """
        text = (text or "").strip()
        if not text:
            return None
        if self.state.in_flight:
            raise SessionBusyError("A reply is already being generated")
        if self._can_retry(text):
            return await self.retry()

        epoch = self._epoch
        self.state = begin_turn(self.state)
        try:
            await self._ensure_session(text, epoch)
            if epoch != self._epoch:
                return None

            prior = self.state.messages
            user_message = ChatMessage(
                id=_new_message_id("user"),
                role=USER_ROLE,
                content=text,
                session_id=self.state.session_id,
            )
            self.state = add_user_message(self.state, user_message)
            await self._persist(user_message, epoch)
            if epoch != self._epoch:
                return None

            history = build_history_window(prior, self.config.history_window)
            return await self._generate_reply(text, history, epoch)
        finally:
            if epoch == self._epoch:
                self.state = end_turn(self.state)

    async def retry(self) -> ChatMessage:
        """Re-run generation for the last failed turn without re-adding the user message."""
        if self.state.in_flight:
            raise SessionBusyError("A reply is already being generated")
        last = self.state.last_message
        if self._failed_question is None or last is None or not last.is_error:
            raise PreconditionError("There is no failed turn to retry")

        epoch = self._epoch
        self.state = begin_turn(drop_trailing_error(self.state))
        try:
            # the failed user message is now last; context is everything before it
            history = build_history_window(self.state.messages[:-1], self.config.history_window)
            logger.info("🔄 [ChatOrchestrator] Retrying failed turn")
            return await self._generate_reply(self._failed_question, history, epoch)
        finally:
            if epoch == self._epoch:
                self.state = end_turn(self.state)

    def _can_retry(self, text: str) -> bool:
        last = self.state.last_message
        return (
            self._failed_question == text
            and last is not None
            and last.is_error
        )

    async def _ensure_session(self, first_message: str, epoch: int):
        if self.state.has_session:
            return
        title = first_message[: self.config.session_title_length]
        try:
            session = await self.store.create_session(self.user_id, title)
        except PersistenceError as e:
            if epoch != self._epoch:
                return
            logger.warning(f"⚠️ [ChatOrchestrator] Session creation failed, continuing locally: {e}")
            self.state = add_warning(self.state, UNSAVED_SESSION_WARNING)
            return
        if epoch != self._epoch:
            # the view was replaced while the row was being created
            return
        self.state = attach_session(self.state, session.id)
        logger.info(f"💾 [ChatOrchestrator] Started session {session.id} ({title!r})")

    async def _generate_reply(
        self,
        question: str,
        history: List[TurnSummary],
        epoch: int,
    ) -> Optional[ChatMessage]:
        try:
            reply = await self.gateway.generate_tutor_reply(question, history)
        except GenerationError as e:
            if epoch != self._epoch:
                return None
            logger.warning(f"⚠️ [ChatOrchestrator] Tutor reply failed: {e}")
            self._failed_question = question
            self.state = add_error_placeholder(self.state)
            return self.state.last_message

        if epoch != self._epoch:
            logger.info("[ChatOrchestrator] Discarding reply for a view that was replaced")
            return None

        tutor_message = ChatMessage(
            id=_new_message_id("tutor"),
            role=TUTOR_ROLE,
            content=reply.simple_explanation,
            session_id=self.state.session_id,
            metadata=reply.to_wire(),
            reply=reply,
        )
        self._failed_question = None
        self.state = add_tutor_reply(self.state, tutor_message)
        await self._persist(tutor_message, epoch)
        return tutor_message

    async def _persist(self, message: ChatMessage, epoch: int):
        """Write a message; failures are logged and surfaced as warnings, never raised."""
        if not self.state.has_session:
            return
        try:
            await self.store.append_message(
                self.state.session_id,
                self.user_id,
                message.content,
                message.role,
                message.metadata,
            )
        except PersistenceError as e:
            if epoch != self._epoch:
                return
            logger.warning(f"⚠️ [ChatOrchestrator] Could not persist {message.role} message: {e}")
            self.state = add_warning(self.state, UNSAVED_MESSAGE_WARNING)

    # ---------- session navigation ----------

    async def list_sessions(self) -> List[ChatSession]:
        return await self.store.list_sessions(self.user_id)

    async def select_session(self, session_id: str) -> ChatState:
        """
        Replace local state with a stored session's history.

        Raises:
            SessionNotFoundError: unknown session, or one owned by another user
                (local state is left untouched)
            PersistenceError: the store could not be read
        """
        session = await self.store.get_session(session_id)
        if session.user_id != self.user_id:
            logger.warning(f"⚠️ [ChatOrchestrator] User {self.user_id} asked for session {session_id} they do not own")
            raise SessionNotFoundError(f"Unknown chat session: {session_id}")

        self._epoch += 1
        epoch = self._epoch
        self.state = begin_turn(self.state)
        try:
            messages = await self.store.get_history(session_id)
        except (PersistenceError, SessionNotFoundError):
            if epoch == self._epoch:
                self.state = end_turn(self.state)
            raise
        if epoch == self._epoch:
            self.state = restore(session_id, messages)
            self._failed_question = None
            logger.info(f"📥 [ChatOrchestrator] Restored session {session_id} ({len(messages)} messages)")
        return self.state

    def start_new_session(self) -> ChatState:
        """Drop the active session; the next send creates a fresh one."""
        self._epoch += 1
        self.state = reset()
        self._failed_question = None
        return self.state

    def set_view(self, message_id: str, view: MessageView) -> ChatState:
        message = next((m for m in self.state.messages if m.id == message_id), None)
        if message is None or not message.has_payload:
            raise PreconditionError(f"No tutor reply with id {message_id!r}")
        self.state = select_view(self.state, message_id, MessageView(view))
        return self.state
