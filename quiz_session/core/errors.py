"""Exceptions raised by the attempt session engine."""

from __future__ import annotations

from quiz_session.constants.message_constants import (
    NAME_REQUIRED_MESSAGE,
    QUIZ_NOT_AVAILABLE_MESSAGE,
    SESSION_NOT_ACTIVE_MESSAGE,
    SUBMISSION_DISABLED_MESSAGE,
    UNANSWERED_CONFIRM_TEMPLATE,
)


class AttemptError(Exception):
    """Base class for domain outcomes that are shown to the participant."""

    default_message: str = "The attempt could not be completed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAvailableError(AttemptError):
    """Share token is unknown or sharing has been disabled. Terminal."""

    default_message = QUIZ_NOT_AVAILABLE_MESSAGE


class RetryExhaustedError(AttemptError):
    """The Retry Gate reports the identity as blocked for this quiz."""

    default_message = SUBMISSION_DISABLED_MESSAGE


class UnansweredQuestionsError(AttemptError):
    """Manual submission needs confirmation because questions are unanswered."""

    def __init__(self, unanswered_count: int) -> None:
        self.unanswered_count = unanswered_count
        super().__init__(UNANSWERED_CONFIRM_TEMPLATE.format(count=unanswered_count))


class SessionStateError(AttemptError):
    """The requested action is not valid in the current session phase."""

    default_message = SESSION_NOT_ACTIVE_MESSAGE


class NameRequiredError(ValueError):
    """Participant name is empty after trimming."""

    def __init__(self) -> None:
        super().__init__(NAME_REQUIRED_MESSAGE)


class InvalidAnswerError(ValueError):
    """Answer refers to an unknown question or an out-of-range option."""


class CollaboratorError(Exception):
    """A read or write against the remote quiz store failed."""
