"""Single entry point that finalizes an attempt.

Manual clicks, timer expiry and the integrity threshold all end up here. The
guard moves IDLE -> IN_FLIGHT before the first await and only ever reaches
DONE, so whichever trigger arrives second finds the work claimed and returns
without writing anything.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
import logging
import time

from quiz_session.core.errors import CollaboratorError, RetryExhaustedError, UnansweredQuestionsError
from quiz_session.core.models import AttemptRecord, AttemptSession, Question, Quiz, SubmissionOutcome
from quiz_session.core.scoring import clamp_time_taken, score
from quiz_session.core.services.countdown_timer import Clock, CountdownTimer
from quiz_session.core.services.quiz_repository import QuizCollaborator
from quiz_session.core.services.retry_gate import RetryGate
from quiz_session.core.services.session_store import ATTEMPT_KEYS, SessionKey, SessionStore

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    DONE = "done"


class SubmissionCoordinator:
    def __init__(
        self,
        quiz: Quiz,
        collaborator: QuizCollaborator,
        store: SessionStore,
        retry_gate: RetryGate,
        *,
        timer: CountdownTimer | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._quiz = quiz
        self._collaborator = collaborator
        self._store = store
        self._retry_gate = retry_gate
        self._timer = timer
        self._clock = clock
        self._state = SubmissionState.IDLE
        self._outcome: SubmissionOutcome | None = None

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def outcome(self) -> SubmissionOutcome | None:
        return self._outcome

    def reset(self) -> None:
        """Re-arm for a new attempt after a permitted retry."""
        self._state = SubmissionState.IDLE
        self._outcome = None

    async def submit(
        self,
        session: AttemptSession,
        *,
        auto: bool = False,
        confirmed: bool = False,
    ) -> SubmissionOutcome | None:
        """Finalize the attempt.

        Returns the stored outcome when already submitted and ``None`` when
        another trigger currently holds the guard.
        """
        if self._state is SubmissionState.DONE:
            return self._outcome
        if self._state is SubmissionState.IN_FLIGHT:
            logger.debug("Submission already in flight; ignoring duplicate trigger.")
            return None
        if session.blocked or self._retry_gate.blocked:
            raise RetryExhaustedError()

        if not auto and not confirmed:
            answered = {q.id for q in session.questions if q.id in session.answers}
            unanswered = len(session.questions) - len(answered)
            if unanswered > 0:
                raise UnansweredQuestionsError(unanswered)

        self._state = SubmissionState.IN_FLIGHT

        try:
            answers, questions = self._resolve_state(session)
            correct = score(answers, questions)
            now = self._clock()
            record = AttemptRecord(
                quiz_id=self._quiz.id,
                participant_name=session.participant_name or self._store.get(SessionKey.PARTICIPANT_NAME, ""),
                answers=answers,
                score=correct,
                total_questions=len(questions),
                time_taken_seconds=self._time_taken(session, now),
                tab_switch_count=int(self._store.get(SessionKey.TAB_SWITCH_COUNT, session.tab_switch_count)),
                completed_at=datetime.fromtimestamp(now, tz=timezone.utc),
            )
        except Exception:
            # Nothing was written yet, so the attempt may be submitted again.
            self._state = SubmissionState.IDLE
            raise

        persisted = True
        try:
            await self._collaborator.insert_attempt(record)
        except CollaboratorError as exc:
            # No outbox: the participant still sees the score.
            persisted = False
            logger.warning("Attempt for quiz %s could not be saved: %s", self._quiz.id, exc)
        except Exception:
            persisted = False
            logger.exception("Unexpected failure saving attempt for quiz %s.", self._quiz.id)

        eligibility = await self._retry_gate.evaluate(record.participant_name)

        try:
            self._store.clear(ATTEMPT_KEYS)
        except OSError:
            logger.exception("Session store for quiz %s could not be cleared.", self._quiz.id)

        session.answers = dict(answers)
        session.questions = list(questions)
        session.tab_switch_count = record.tab_switch_count
        session.time_remaining_seconds = None
        session.submitted = True
        session.blocked = eligibility.blocked and eligibility.verified

        self._outcome = SubmissionOutcome(record=record, persisted=persisted, auto=auto, eligibility=eligibility)
        self._state = SubmissionState.DONE
        logger.info(
            "Quiz %s submitted (%s) by %r: %d/%d in %ds.",
            self._quiz.id,
            "auto" if auto else "manual",
            record.participant_name,
            record.score,
            record.total_questions,
            record.time_taken_seconds,
        )
        return self._outcome

    def _resolve_state(self, session: AttemptSession) -> tuple[dict[str, int], list[Question]]:
        """Prefer in-memory state, falling back to the store."""
        answers = dict(session.answers) or {
            str(k): int(v) for k, v in (self._store.get(SessionKey.ANSWERS) or {}).items()
        }
        questions = list(session.questions) or [
            Question.from_dict(item) for item in self._store.get(SessionKey.QUESTIONS_SNAPSHOT) or []
        ]
        known = {question.id for question in questions}
        return {k: v for k, v in answers.items() if k in known}, questions

    def _time_taken(self, session: AttemptSession, now: float) -> int:
        if self._timer is not None and self._timer.deadline() is not None:
            return clamp_time_taken(self._timer.elapsed_seconds())
        started_at = session.started_at or self._store.get(SessionKey.SESSION_START_TIME)
        if started_at is None:
            return clamp_time_taken(0)
        return clamp_time_taken(now - started_at)
