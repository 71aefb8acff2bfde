"""Static metadata describing QuizShare."""

APP_NAME = "QuizShare"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "QuizShare runs shared multiple-choice quizzes in the browser. "
    "Participants enter a name, answer against an optional countdown, and "
    "their attempt is scored and recorded when they submit."
)
