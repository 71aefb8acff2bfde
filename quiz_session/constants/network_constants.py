"""Network configuration constants for the attempt server."""

import os

DEFAULT_HOST: str = os.getenv("QUIZ_SESSION_HOST", "0.0.0.0")
DEFAULT_PORT: int = int(os.getenv("QUIZ_SESSION_PORT", "8000"))
SESSION_COOKIE_NAME: str = "quiz_session_id"
SESSION_COOKIE_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 30
