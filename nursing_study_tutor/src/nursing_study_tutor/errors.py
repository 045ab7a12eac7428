"""
Error taxonomy for the tutor core.

GenerationError and its ValidationError subtype come from the content
gateway; PersistenceError from the session store; AuthError from the
identity layer. PreconditionError and SessionBusyError are raised by the
orchestrators when a caller triggers an action it should have disabled.
"""

from typing import List, Optional


class TutorError(Exception):
    """Base class for all tutor errors."""


class GenerationError(TutorError):
    """The generative provider failed or returned unusable content."""


class ValidationError(GenerationError):
    """Provider JSON parsed but broke the structured-content contract."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.problems = problems or []


class PersistenceError(TutorError):
    """A session store read or write failed."""


class AuthError(TutorError):
    """Authentication or profile lookup failed. The message is user-facing."""


class PreconditionError(TutorError, ValueError):
    """An engine operation was called in a state that does not allow it."""


class SessionBusyError(TutorError):
    """A request for this feature area is already in flight."""


class SessionNotFoundError(TutorError, LookupError):
    """The chat session does not exist or belongs to another user."""
