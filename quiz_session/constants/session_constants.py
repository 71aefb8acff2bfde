"""Attempt-session constants shared by the engine and the server."""

import os
from pathlib import Path

OPTION_COUNT: int = 4
OPTION_LABELS: tuple[str, ...] = ("A", "B", "C", "D")
DEFAULT_TAB_SWITCH_WARNINGS: int = 3
TIMER_TICK_SECONDS: float = 1.0
MIN_TIME_TAKEN_SECONDS: int = 1
SHARE_TOKEN_BYTES: int = 16
BLOCKED_SHORTCUT_KEYS: frozenset[str] = frozenset({"c", "v", "x", "a"})

QUIZ_DIRECTORY: Path = Path(os.getenv("QUIZ_SESSION_QUIZ_DIR", "quizzes"))
SESSION_DATA_DIRECTORY: Path = Path(os.getenv("QUIZ_SESSION_DATA_DIR", ".quiz_sessions"))

# Live engines idle longer than this are dropped; their state resumes from the store.
SESSION_IDLE_TIMEOUT_SECONDS: float = float(os.getenv("QUIZ_SESSION_IDLE_TIMEOUT", "1800"))
MAX_LIVE_SESSIONS: int = int(os.getenv("QUIZ_SESSION_MAX_LIVE", "1000"))
