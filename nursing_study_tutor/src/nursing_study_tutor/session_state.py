"""
Chat Session Data Model

Dataclasses for persisted chat sessions and messages, plus the local
(per-view) chat state the orchestrator transitions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from nursing_study_tutor.content_models import TutorReply

USER_ROLE = "user"
TUTOR_ROLE = "tutor"


class MessageView(str, Enum):
    """Which panel of a tutor message is showing. Never persisted."""
    OVERVIEW = "overview"
    SLIDES = "slides"
    FLASHCARDS = "flashcards"
    QUIZ = "quiz"


@dataclass
class ChatSession:
    """A persisted conversation thread."""
    id: str
    user_id: str
    title: str
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class ChatMessage:
    """
    One chat message.

    `metadata` is the opaque bag persisted with the message; for tutor turns
    it holds the structured content (plus any keys a newer schema added).
    `reply` is the typed view of that metadata, or None for user messages,
    error placeholders, and stored payloads that no longer parse (the raw
    metadata is still kept and served for those).
    """
    id: str
    role: str
    content: str
    session_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    reply: Optional[TutorReply] = None
    is_error: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_tutor(self) -> bool:
        return self.role == TUTOR_ROLE

    @property
    def has_payload(self) -> bool:
        """Tutor turn carrying structured content, typed or only as raw metadata."""
        return self.is_tutor and not self.is_error and (self.reply is not None or bool(self.metadata))

    def summary(self) -> "TurnSummary":
        return TurnSummary(role=self.role, content=self.content)


@dataclass(frozen=True)
class TurnSummary:
    """A `{role, content}` pair sent to the gateway as conversation context."""
    role: str
    content: str


@dataclass
class ChatState:
    """Local chat state owned by a single active view."""
    session_id: Optional[str] = None
    messages: List[ChatMessage] = field(default_factory=list)
    views: Dict[str, MessageView] = field(default_factory=dict)
    in_flight: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def has_session(self) -> bool:
        return self.session_id is not None

    @property
    def last_message(self) -> Optional[ChatMessage]:
        return self.messages[-1] if self.messages else None

    def view_for(self, message_id: str) -> MessageView:
        return self.views.get(message_id, MessageView.OVERVIEW)
