"""Logging configuration helpers for the attempt server."""

from __future__ import annotations

import logging
from logging import Logger
import os

LOG_LEVEL_ENV = "QUIZ_SESSION_LOG_LEVEL"


def configure_logging(level: int | str | None = None) -> Logger:
    """Configure process-wide logging once and return the package logger.

    ``level`` falls back to ``QUIZ_SESSION_LOG_LEVEL`` and then INFO.
    """
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("quiz_session")
