"""Scoring and result helpers."""

from __future__ import annotations

from typing import Mapping, Sequence

from quiz_session.constants.message_constants import (
    GOOD_SCORE_MESSAGE,
    LOW_SCORE_MESSAGE,
    PERFECT_SCORE_MESSAGE,
)
from quiz_session.constants.session_constants import MIN_TIME_TAKEN_SECONDS
from quiz_session.core.models import Question


def score(answers: Mapping[str, int], questions: Sequence[Question]) -> int:
    """Count questions whose recorded option equals the correct index."""
    return sum(1 for question in questions if answers.get(question.id) == question.correct_option_index)


def clamp_time_taken(seconds: float) -> int:
    return max(int(seconds), MIN_TIME_TAKEN_SECONDS)


def feedback_message(correct: int, total: int) -> str:
    if total and correct == total:
        return PERFECT_SCORE_MESSAGE
    if correct >= total / 2:
        return GOOD_SCORE_MESSAGE
    return LOW_SCORE_MESSAGE


def correct_answer_key(questions: Sequence[Question]) -> dict[str, int]:
    return {question.id: question.correct_option_index for question in questions}
