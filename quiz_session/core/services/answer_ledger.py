"""Service recording the participant's selected option per question."""

from __future__ import annotations

from typing import Callable, Iterable

from quiz_session.constants.session_constants import OPTION_COUNT
from quiz_session.core.errors import InvalidAnswerError
from quiz_session.core.services.session_store import SessionKey, SessionStore


class AnswerLedger:
    """One option index per question id, persisted on every change."""

    def __init__(
        self,
        store: SessionStore,
        question_ids: Iterable[str],
        *,
        is_locked: Callable[[], bool] = lambda: False,
    ) -> None:
        self._store = store
        self._question_ids: list[str] = list(question_ids)
        self._is_locked = is_locked
        self._answers: dict[str, int] = {}

    def bind_questions(self, question_ids: Iterable[str]) -> None:
        self._question_ids = list(question_ids)

    def load(self) -> dict[str, int]:
        """Restore answers from the store, dropping keys for unknown questions."""
        stored = self._store.get(SessionKey.ANSWERS) or {}
        known = set(self._question_ids)
        self._answers = {
            str(question_id): int(option_index)
            for question_id, option_index in stored.items()
            if str(question_id) in known
        }
        return self.answers

    def select_answer(self, question_id: str, option_index: int) -> bool:
        """Record a selection. Returns False when the ledger is locked."""
        if self._is_locked():
            return False
        if question_id not in self._question_ids:
            raise InvalidAnswerError(f"Unknown question {question_id!r}.")
        if isinstance(option_index, bool) or not 0 <= option_index < OPTION_COUNT:
            raise InvalidAnswerError("Option index must be between 0 and 3.")

        self._answers[question_id] = option_index
        self._store.set(SessionKey.ANSWERS, dict(self._answers))
        return True

    def reset(self) -> None:
        self._answers = {}
        self._store.remove(SessionKey.ANSWERS)

    @property
    def answers(self) -> dict[str, int]:
        return dict(self._answers)

    @property
    def answered_count(self) -> int:
        return len(self._answers)

    @property
    def unanswered_count(self) -> int:
        return len(self._question_ids) - len(self._answers)
