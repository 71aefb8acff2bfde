"""User-facing messages surfaced by the attempt engine."""

QUIZ_NOT_AVAILABLE_MESSAGE: str = "This quiz link is invalid or sharing has been disabled by the creator."
NAME_REQUIRED_MESSAGE: str = "You must enter your name before attempting this quiz."
RETRY_LIMIT_MESSAGE: str = "Retry limit reached. You cannot attempt again."
SUBMISSION_DISABLED_MESSAGE: str = "Maximum retries reached. Submission disabled."
NO_RETRIES_LEFT_MESSAGE: str = "No retries left."
ELIGIBILITY_UNAVAILABLE_MESSAGE: str = "Could not verify previous attempts. Please try again."
UNANSWERED_CONFIRM_TEMPLATE: str = "{count} question(s) unanswered. Submit anyway?"
TIME_UP_MESSAGE: str = "Time is up! Quiz auto-submitted."
TAB_SWITCH_WARNING_TEMPLATE: str = "Warning: tab/app switch detected. Warnings left: {remaining}"
TAB_SWITCH_AUTO_SUBMIT_MESSAGE: str = "Too many tab/app switches detected. Quiz auto-submitted."
SUBMISSION_NOT_SAVED_MESSAGE: str = "Your score could not be saved."
SESSION_NOT_ACTIVE_MESSAGE: str = "The quiz is not in progress."

PERFECT_SCORE_MESSAGE: str = "Perfect score! 🎉"
GOOD_SCORE_MESSAGE: str = "Good job! Keep practicing."
LOW_SCORE_MESSAGE: str = "Keep learning, you'll do better next time!"
