"""Remote quiz collaborator: quiz settings, questions and attempt records."""

from __future__ import annotations

from dataclasses import replace
import secrets
from threading import Lock
from typing import Protocol
from uuid import uuid4

from quiz_session.constants.session_constants import OPTION_COUNT, SHARE_TOKEN_BYTES
from quiz_session.core.errors import CollaboratorError
from quiz_session.core.models import AttemptRecord, Question, Quiz

__all__ = ["CollaboratorError", "InMemoryQuizRepository", "QuizCollaborator"]


class QuizCollaborator(Protocol):
    """Operations the attempt engine consumes from the remote quiz store.

    Implementations raise ``CollaboratorError`` when the store cannot be
    reached; the engine never sees transport-specific exceptions.
    """

    async def fetch_quiz_by_share_token(self, share_token: str) -> Quiz | None: ...

    async def fetch_quiz(self, quiz_id: str) -> Quiz | None: ...

    async def fetch_questions(self, quiz_id: str) -> list[Question]: ...

    async def count_attempts(self, quiz_id: str, participant_name: str) -> int: ...

    async def insert_attempt(self, record: AttemptRecord) -> None: ...


class InMemoryQuizRepository:
    """Lock-protected in-process quiz store."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._quizzes: dict[str, Quiz] = {}
        self._questions: dict[str, list[Question]] = {}
        self._attempts: list[AttemptRecord] = []

    # --- Seeding ---

    def add_quiz(self, quiz: Quiz, questions: list[Question]) -> Quiz:
        """Register a quiz with its questions and return the stored copy."""
        if not questions:
            raise ValueError("Quiz must contain at least one question.")
        title = quiz.title.strip()
        if not title:
            raise ValueError("Quiz title must not be empty.")

        use_positions = all(question.order_num == 0 for question in questions)
        prepared = [
            self._prepare_question(question, index if use_positions else question.order_num)
            for index, question in enumerate(questions)
        ]
        stored = replace(
            quiz,
            id=quiz.id or uuid4().hex,
            title=title,
            share_token=quiz.share_token or secrets.token_hex(SHARE_TOKEN_BYTES),
        )
        with self._lock:
            if any(q.share_token == stored.share_token and q.id != stored.id for q in self._quizzes.values()):
                raise ValueError(f"Share token {stored.share_token!r} is already in use.")
            self._quizzes[stored.id] = stored
            self._questions[stored.id] = prepared
        return stored

    def update_quiz(self, quiz_id: str, **changes: object) -> Quiz:
        """Change quiz settings, e.g. raise max_retries or disable sharing."""
        with self._lock:
            current = self._quizzes.get(quiz_id)
            if current is None:
                raise KeyError(quiz_id)
            updated = replace(current, **changes)
            self._quizzes[quiz_id] = updated
            return updated

    def list_quizzes(self) -> list[Quiz]:
        with self._lock:
            return list(self._quizzes.values())

    def list_attempts(self, quiz_id: str) -> list[AttemptRecord]:
        with self._lock:
            return [record for record in self._attempts if record.quiz_id == quiz_id]

    # --- QuizCollaborator ---

    async def fetch_quiz_by_share_token(self, share_token: str) -> Quiz | None:
        with self._lock:
            return next((q for q in self._quizzes.values() if q.share_token == share_token), None)

    async def fetch_quiz(self, quiz_id: str) -> Quiz | None:
        with self._lock:
            return self._quizzes.get(quiz_id)

    async def fetch_questions(self, quiz_id: str) -> list[Question]:
        with self._lock:
            questions = self._questions.get(quiz_id, [])
            return sorted((replace(q, options=list(q.options)) for q in questions), key=lambda q: q.order_num)

    async def count_attempts(self, quiz_id: str, participant_name: str) -> int:
        # Exact match: no trimming or case folding.
        with self._lock:
            return sum(
                1
                for record in self._attempts
                if record.quiz_id == quiz_id and record.participant_name == participant_name
            )

    async def insert_attempt(self, record: AttemptRecord) -> None:
        with self._lock:
            if record.quiz_id not in self._quizzes:
                raise CollaboratorError(f"Unknown quiz {record.quiz_id!r}.")
            self._attempts.append(replace(record, answers=dict(record.answers)))

    # --- Validation ---

    def _prepare_question(self, question: Question, order_num: int) -> Question:
        options = self._validate_options(question.options)
        if not 0 <= question.correct_option_index < OPTION_COUNT:
            raise ValueError("Correct option index must be between 0 and 3.")

        cleaned_text = question.question_text.strip()
        if not cleaned_text:
            raise ValueError("Question text must not be empty.")

        return Question(
            id=question.id or uuid4().hex,
            question_text=cleaned_text,
            options=options,
            correct_option_index=question.correct_option_index,
            order_num=order_num,
        )

    @staticmethod
    def _validate_options(options: list[str]) -> list[str]:
        if len(options) != OPTION_COUNT:
            raise ValueError("Each question must have exactly four options.")
        cleaned = [option.strip() for option in options]
        if any(not option for option in cleaned):
            raise ValueError("Option text cannot be empty.")
        return cleaned
