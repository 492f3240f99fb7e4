"""Exception hierarchy for the proctoring core."""

from __future__ import annotations


class ProctorError(Exception):
    """Base class for every error raised by the proctoring core."""


class NoQuestionsAvailable(ProctorError):
    """Raised when the question source yields nothing for a domain/level pair."""

    def __init__(self, domain_id: str, experience_level: str) -> None:
        super().__init__(
            f"No questions available for domain '{domain_id}' and experience level '{experience_level}'."
        )
        self.domain_id = domain_id
        self.experience_level = experience_level


class MediaAccessDenied(ProctorError):
    """Raised when camera/microphone capture cannot be acquired."""


class FullscreenDenied(ProctorError):
    """Raised when the environment refuses to enter fullscreen."""


class PersistenceFailure(ProctorError):
    """Raised when a persistence write fails; the session keeps its in-memory state."""


class ExecutionFailure(ProctorError):
    """Raised by code execution adapters; converted to a failed ExecutionResult by the core."""


class ValidationFailure(ProctorError):
    """Raised by validation adapters; converted to a zero score during finalization."""


class DoubleFinalization(ProctorError):
    """Raised if the scoring pass is entered twice for the same session."""


class InvalidSessionState(ProctorError):
    """Raised when an operation is attempted outside its valid session states."""


class UnknownQuestion(ProctorError):
    """Raised when a question id is not part of the session's assigned set."""


class UnknownSession(ProctorError):
    """Raised when a session id is not registered."""


class QuestionImportError(ProctorError):
    """Raised when a question bank file cannot be parsed."""
