import random

import pytest

from conftest import make_questions
from quiz_session.constants.message_constants import (
    GOOD_SCORE_MESSAGE,
    LOW_SCORE_MESSAGE,
    PERFECT_SCORE_MESSAGE,
)
from quiz_session.core.scoring import clamp_time_taken, feedback_message, score


def test_score_counts_only_exact_matches():
    questions = make_questions(4)  # correct indexes 1, 2, 3, 0
    answers = {"q1": 1, "q2": 0, "q3": 7, "unknown": 0}
    assert score(answers, questions) == 1


def test_score_matches_definition_for_random_answer_maps():
    rng = random.Random(3)
    questions = make_questions(8)
    for _ in range(50):
        answers = {q.id: rng.randint(-1, 5) for q in questions if rng.random() < 0.7}
        expected = len([q for q in questions if answers.get(q.id) == q.correct_option_index])
        assert score(answers, questions) == expected


@pytest.mark.parametrize("elapsed, expected", [(0, 1), (0.4, 1), (-5, 1), (1.9, 1), (61.2, 61)])
def test_time_taken_is_at_least_one_second(elapsed, expected):
    assert clamp_time_taken(elapsed) == expected


@pytest.mark.parametrize(
    "correct, total, message",
    [(5, 5, PERFECT_SCORE_MESSAGE), (3, 5, GOOD_SCORE_MESSAGE), (2, 5, LOW_SCORE_MESSAGE), (0, 0, GOOD_SCORE_MESSAGE)],
)
def test_feedback_message(correct, total, message):
    assert feedback_message(correct, total) == message
