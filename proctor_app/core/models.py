"""Domain models for proctored assessment sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    AWAITING_START = "awaiting_start"
    ACTIVE = "active"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "mcq"
    CODING = "coding"
    FREE_TEXT = "text"


class ExperienceLevel(str, Enum):
    FRESHER = "fresher"
    EXPERIENCED = "experienced"


class ViolationType(str, Enum):
    FULLSCREEN_EXIT = "fullscreen_exit"
    TAB_SWITCH = "tab_switch"
    CAMERA_DISABLED = "camera_disabled"
    MICROPHONE_DISABLED = "microphone_disabled"
    FORBIDDEN_SHORTCUT = "forbidden_shortcut"
    CONTEXT_MENU_ATTEMPT = "context_menu_attempt"
    MEDIA_ACCESS_DENIED = "media_access_denied"
    FULLSCREEN_DENIED = "fullscreen_denied"


class SubmissionTrigger(str, Enum):
    """Reasons a session can be finalized."""

    MANUAL = "manual"
    TIME_EXPIRED = "time_expired"
    VIOLATION_LIMIT = "violation_limit"
    START_FAILED = "start_failed"
    DISPOSED = "disposed"

    @property
    def abandons_session(self) -> bool:
        return self in (SubmissionTrigger.START_FAILED, SubmissionTrigger.DISPOSED)


class OverallRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    POOR = "poor"


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


class MediaTrack(str, Enum):
    CAMERA = "camera"
    MICROPHONE = "microphone"


@dataclass(slots=True)
class CodeTestCase:
    """Single input/expected-output pair attached to a coding question."""

    input: str
    expected_output: str


@dataclass(slots=True)
class Question:
    """Assessment question supplied by the question source. Never mutated by the core."""

    id: str
    domain_id: str
    question_text: str
    type: QuestionType
    experience_level: ExperienceLevel = ExperienceLevel.FRESHER
    difficulty: int = 1
    max_score: int = 10
    time_limit_seconds: int = 300
    options: list[str] = field(default_factory=list)
    correct_option: str | None = None
    starter_code: str | None = None
    language: str | None = None
    test_cases: list[CodeTestCase] = field(default_factory=list)
    expected_output: str | None = None


@dataclass(slots=True)
class ExecutionResult:
    status: ExecutionStatus
    output: str | None = None
    error: str | None = None
    execution_time_ms: int = 0
    memory_usage_bytes: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS


@dataclass(slots=True)
class ValidationResult:
    score: float
    max_score: float
    feedback: str
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AnswerPayload:
    """What the candidate submitted for one question."""

    answer_text: str | None = None
    answer_code: str | None = None
    selected_option: str | None = None

    def primary_value(self) -> str:
        """Return the value handed to the validator, preferring text, then code, then option."""
        for value in (self.answer_text, self.answer_code, self.selected_option):
            if value and value.strip():
                return value
        return ""

    def is_blank(self) -> bool:
        return not self.primary_value()


@dataclass(slots=True)
class Answer:
    """One answer per (session, question); resubmission overwrites the draft."""

    session_id: str
    question_id: str
    payload: AnswerPayload
    max_score: int
    execution_result: ExecutionResult | None = None
    score: float = 0.0
    feedback: str = ""
    time_spent_seconds: int = 0
    submitted_at: datetime = field(default_factory=datetime.utcnow)
    scored: bool = False


@dataclass(slots=True, frozen=True)
class Violation:
    """Append-only integrity breach record."""

    session_id: str
    type: ViolationType
    detail: str
    timestamp: datetime


@dataclass(slots=True)
class QuestionFeedback:
    question_id: str
    score: float
    max_score: int
    feedback: str
    answered: bool


@dataclass(slots=True)
class ScoringOutcome:
    total_score: float
    feedbacks: list[QuestionFeedback]


@dataclass(slots=True)
class InterviewSession:
    """Session record owned exclusively by the session controller."""

    id: str
    candidate_id: str
    domain_id: str
    exam_code: str
    experience_level: ExperienceLevel
    question_ids: list[str]
    max_possible_score: int
    time_remaining_seconds: int
    status: SessionStatus = SessionStatus.NOT_STARTED
    violation_count: int = 0
    current_question_index: int = 0
    total_score: float = 0.0
    overall_rating: OverallRating | None = None
    ai_feedback: str | None = None
    submission_trigger: SubmissionTrigger | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    time_taken_seconds: int | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def percentage_score(self) -> float:
        if self.max_possible_score <= 0:
            return 0.0
        return self.total_score / self.max_possible_score * 100


@dataclass(slots=True, frozen=True)
class KeyEvent:
    """Keyboard signal forwarded by the capability provider."""

    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    meta: bool = False

    def describe(self) -> str:
        parts = []
        if self.ctrl:
            parts.append("Ctrl")
        if self.shift:
            parts.append("Shift")
        if self.alt:
            parts.append("Alt")
        if self.meta:
            parts.append("Meta")
        parts.append(self.key)
        return "+".join(parts)


@dataclass(slots=True)
class SessionSnapshot:
    """Immutable snapshot returned to display consumers."""

    session_id: str
    status: SessionStatus
    time_remaining_seconds: int
    violation_count: int
    current_question_index: int
    question_count: int
    answered_question_ids: list[str]
    camera_enabled: bool
    microphone_enabled: bool
    fullscreen: bool
    total_score: float
    max_possible_score: int
    percentage_score: float
    overall_rating: OverallRating | None
    submission_trigger: SubmissionTrigger | None
    pending_writes: int
