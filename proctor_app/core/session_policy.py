"""Per-deployment session configuration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from proctor_app.constants.session_constants import (
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_EXECUTION_TIMEOUT_SECONDS,
    DEFAULT_VALIDATION_TIMEOUT_SECONDS,
    DEFAULT_VIOLATION_THRESHOLD,
    RECORDING_CHUNK_SECONDS,
    RECORDING_MAX_CHUNKS,
)


class TimePolicy(str, Enum):
    SESSION = "session"
    PER_QUESTION = "per_question"


@dataclass(slots=True, frozen=True)
class SessionPolicy:
    """Tunable rules applied by a session controller."""

    violation_threshold: int = DEFAULT_VIOLATION_THRESHOLD
    time_policy: TimePolicy = TimePolicy.SESSION
    require_media: bool = False
    require_fullscreen: bool = False
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    execution_timeout_seconds: float = DEFAULT_EXECUTION_TIMEOUT_SECONDS
    validation_timeout_seconds: float = DEFAULT_VALIDATION_TIMEOUT_SECONDS
    recording_chunk_seconds: int = RECORDING_CHUNK_SECONDS
    recording_max_chunks: int = RECORDING_MAX_CHUNKS

    def __post_init__(self) -> None:
        if self.violation_threshold <= 0:
            raise ValueError("Violation threshold must be a positive integer.")
        if self.debounce_seconds < 0:
            raise ValueError("Debounce window cannot be negative.")
        if self.execution_timeout_seconds <= 0 or self.validation_timeout_seconds <= 0:
            raise ValueError("Collaborator timeouts must be positive.")
        if self.recording_chunk_seconds <= 0 or self.recording_max_chunks <= 0:
            raise ValueError("Recording buffer settings must be positive.")

