"""Session-related constants shared across the core and server layers."""

DEFAULT_VIOLATION_THRESHOLD: int = 3
DEFAULT_TIME_LIMIT_SECONDS: int = 300
DEFAULT_MAX_SCORE: int = 10
TICK_INTERVAL_SECONDS: float = 1.0

# Repeated keyboard/context-menu signals inside this window count once.
DEFAULT_DEBOUNCE_SECONDS: float = 1.0

DEFAULT_EXECUTION_TIMEOUT_SECONDS: float = 10.0
DEFAULT_VALIDATION_TIMEOUT_SECONDS: float = 15.0

RECORDING_CHUNK_SECONDS: int = 10
RECORDING_MAX_CHUNKS: int = 30

RATING_EXCELLENT_THRESHOLD: float = 90.0
RATING_GOOD_THRESHOLD: float = 75.0
RATING_AVERAGE_THRESHOLD: float = 60.0

FORBIDDEN_KEYS: tuple[str, ...] = ("F12", "F5", "F11")

# (key, ctrl, shift, alt)
FORBIDDEN_COMBOS: tuple[tuple[str, bool, bool, bool], ...] = (
    ("r", True, False, False),
    ("w", True, False, False),
    ("t", True, False, False),
    ("n", True, False, False),
    ("i", True, True, False),
    ("j", True, True, False),
    ("c", True, True, False),
    ("tab", False, False, True),
    ("f4", False, False, True),
)

SUPPORTED_LANGUAGES: tuple[str, ...] = ("python", "javascript", "html", "apex")
