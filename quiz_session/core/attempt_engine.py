"""State machine governing one participant's attempt at a shared quiz."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable

from quiz_session.constants.message_constants import (
    ELIGIBILITY_UNAVAILABLE_MESSAGE,
    NO_RETRIES_LEFT_MESSAGE,
    RETRY_LIMIT_MESSAGE,
    SUBMISSION_NOT_SAVED_MESSAGE,
    TAB_SWITCH_AUTO_SUBMIT_MESSAGE,
    TAB_SWITCH_WARNING_TEMPLATE,
    TIME_UP_MESSAGE,
)
from quiz_session.core.errors import (
    CollaboratorError,
    NameRequiredError,
    NotAvailableError,
    RetryExhaustedError,
    SessionStateError,
)
from quiz_session.core.models import (
    AttemptSession,
    Eligibility,
    Question,
    Quiz,
    SessionPhase,
    SubmissionOutcome,
)
from quiz_session.core.scoring import correct_answer_key, feedback_message
from quiz_session.core.services.answer_ledger import AnswerLedger
from quiz_session.core.services.countdown_timer import Clock, CountdownTimer, Scheduler, format_time
from quiz_session.core.services.identity_gate import IdentityGate
from quiz_session.core.services.integrity_monitor import InputGuard, IntegrityMonitor, IntegrityWarning
from quiz_session.core.services.quiz_repository import QuizCollaborator
from quiz_session.core.services.retry_gate import RetryGate
from quiz_session.core.services.session_store import ATTEMPT_KEYS, SessionKey, SessionStore
from quiz_session.core.services.submission_coordinator import SubmissionCoordinator, SubmissionState

logger = logging.getLogger(__name__)

Spawner = Callable[[Awaitable[Any]], "asyncio.Future[Any]"]


class AttemptEngine:
    """Facade over the gates, timer, monitor, ledger and coordinator.

    Phases: GATED -> CHECKING_ELIGIBILITY -> BLOCKED | ACTIVE;
    ACTIVE -> SUBMITTING -> SUBMITTED; SUBMITTED -> ACTIVE only through
    ``retry()`` while retries remain.
    """

    def __init__(
        self,
        quiz: Quiz,
        questions: list[Question],
        collaborator: QuizCollaborator,
        store: SessionStore,
        *,
        clock: Clock = time.time,
        scheduler: Scheduler | None = None,
        rng: random.Random | None = None,
        spawn: Spawner | None = None,
        fail_closed: bool = True,
    ) -> None:
        self._quiz = quiz
        self._source_questions = sorted(questions, key=lambda q: q.order_num)
        self._store = store
        self._clock = clock
        self._rng = rng or random.Random()
        self._spawn: Spawner = spawn or asyncio.ensure_future

        self._session = AttemptSession()
        self._phase = SessionPhase.GATED
        self._resetting = False
        self._notices: list[str] = []
        self._tasks: set[asyncio.Future[Any]] = set()

        self._retry_gate = RetryGate(collaborator, quiz, fail_closed=fail_closed)
        self._identity_gate = IdentityGate(store, self._retry_gate, clock=clock)
        self._ledger = AnswerLedger(store, [], is_locked=lambda: self.phase is not SessionPhase.ACTIVE)
        self._input_guard = InputGuard(enabled=quiz.prevent_copy_paste)

        self._timer: CountdownTimer | None = None
        if quiz.duration_seconds:
            self._timer = CountdownTimer(
                store,
                quiz.duration_seconds,
                self._on_timer_expired,
                clock=clock,
                scheduler=scheduler,
                is_live=self._is_live,
            )

        self._monitor: IntegrityMonitor | None = None
        if quiz.prevent_tab_switch:
            self._monitor = IntegrityMonitor(
                store,
                quiz.tab_switch_warnings,
                self._on_integrity_threshold,
                is_live=lambda: self._is_live() and not self._resetting,
            )

        self._coordinator = SubmissionCoordinator(
            quiz, collaborator, store, self._retry_gate, timer=self._timer, clock=clock
        )

    @classmethod
    async def open(
        cls,
        collaborator: QuizCollaborator,
        share_token: str,
        store: SessionStore,
        **options: Any,
    ) -> "AttemptEngine":
        """Load a shared quiz and resume whatever the store holds for it."""
        try:
            quiz = await collaborator.fetch_quiz_by_share_token(share_token)
            if quiz is None or not quiz.sharing_enabled:
                raise NotAvailableError()
            questions = await collaborator.fetch_questions(quiz.id)
        except CollaboratorError as exc:
            logger.warning("Loading quiz for token %s failed: %s", share_token, exc)
            raise NotAvailableError() from exc

        engine = cls(quiz, questions, collaborator, store, **options)
        await engine.resume()
        return engine

    # --- State ---

    @property
    def quiz(self) -> Quiz:
        return self._quiz

    @property
    def session(self) -> AttemptSession:
        return self._session

    @property
    def phase(self) -> SessionPhase:
        if self._phase is SessionPhase.ACTIVE and self._coordinator.state is SubmissionState.IN_FLIGHT:
            return SessionPhase.SUBMITTING
        return self._phase

    @property
    def eligibility(self) -> Eligibility | None:
        return self._retry_gate.last

    @property
    def outcome(self) -> SubmissionOutcome | None:
        return self._coordinator.outcome

    @property
    def input_guard(self) -> InputGuard:
        return self._input_guard

    @property
    def timer(self) -> CountdownTimer | None:
        return self._timer

    @property
    def unanswered_count(self) -> int:
        return self._ledger.unanswered_count

    @property
    def is_busy(self) -> bool:
        """True while a submission or an auto-submit task is still running."""
        return self.phase is SessionPhase.SUBMITTING or bool(self._tasks)

    def time_remaining_seconds(self) -> int | None:
        if self._timer is None or self._phase is not SessionPhase.ACTIVE:
            return None
        return self._timer.remaining_seconds()

    def drain_notices(self) -> list[str]:
        notices, self._notices = self._notices, []
        return notices

    # --- Lifecycle ---

    async def resume(self) -> None:
        """Restore a started attempt after a reload or restart."""
        name = self._identity_gate.remembered_name()
        self._session.participant_name = name
        if not self._store.get(SessionKey.STARTED, False) or not name:
            self._phase = SessionPhase.GATED
            return

        # Attempts made elsewhere under the same name may have used up the
        # budget while this one sat unsubmitted.
        eligibility = await self._retry_gate.refresh(name)
        if eligibility is not None and eligibility.blocked and eligibility.verified:
            self._enter_blocked(RETRY_LIMIT_MESSAGE)
            logger.info("Resumed attempt for %r on quiz %s is out of retries.", name, self._quiz.id)
            return

        started_at = self._store.get(SessionKey.SESSION_START_TIME)
        if started_at is None:
            started_at = self._identity_gate.mark_started()
        self._session.started_at = started_at
        self._enter_active(self._restore_questions())
        logger.info("Resumed attempt for %r on quiz %s.", name, self._quiz.id)

    async def confirm_identity(self, name: str) -> Eligibility:
        if self._phase is not SessionPhase.GATED:
            raise SessionStateError()

        self._phase = SessionPhase.CHECKING_ELIGIBILITY
        try:
            cleaned, eligibility = await self._identity_gate.confirm(name)
        except NameRequiredError:
            self._phase = SessionPhase.GATED
            raise

        self._session.participant_name = cleaned
        if eligibility.blocked:
            if eligibility.verified:
                self._phase = SessionPhase.BLOCKED
                self._session.blocked = True
                self._notices.append(RETRY_LIMIT_MESSAGE)
            else:
                self._phase = SessionPhase.GATED
                self._notices.append(ELIGIBILITY_UNAVAILABLE_MESSAGE)
            return eligibility

        self._store.clear(
            [SessionKey.QUESTIONS_SNAPSHOT, SessionKey.ANSWERS, SessionKey.TIMER_DEADLINE, SessionKey.TAB_SWITCH_COUNT]
        )
        self._session.started_at = self._store.get(SessionKey.SESSION_START_TIME)
        self._enter_active(self._prepare_questions())
        return eligibility

    def select_answer(self, question_id: str, option_index: int) -> bool:
        if self._phase in (SessionPhase.GATED, SessionPhase.CHECKING_ELIGIBILITY, SessionPhase.BLOCKED):
            raise SessionStateError()
        changed = self._ledger.select_answer(question_id, option_index)
        if changed:
            self._session.answers = self._ledger.answers
        return changed

    def handle_visibility_change(self, hidden: bool) -> IntegrityWarning | None:
        if self._monitor is None:
            return None
        warning = self._monitor.handle_visibility_change(hidden)
        if warning is not None:
            self._session.tab_switch_count = warning.tab_switch_count
            if not warning.threshold_reached:
                self._notices.append(TAB_SWITCH_WARNING_TEMPLATE.format(remaining=warning.warnings_left))
        return warning

    async def submit(self, *, confirmed: bool = False, auto: bool = False) -> SubmissionOutcome | None:
        if self._phase is SessionPhase.SUBMITTED:
            return self._coordinator.outcome
        if self._phase is SessionPhase.BLOCKED:
            raise RetryExhaustedError()
        if self._phase is not SessionPhase.ACTIVE:
            raise SessionStateError()

        if self._monitor is not None:
            self._session.tab_switch_count = self._monitor.count()
        try:
            outcome = await self._coordinator.submit(self._session, auto=auto, confirmed=confirmed)
        except RetryExhaustedError as exc:
            self._enter_blocked(exc.message)
            raise
        if outcome is not None and self._phase is SessionPhase.ACTIVE:
            self._enter_submitted(outcome)
        return outcome

    async def retry(self) -> Eligibility:
        if self._phase is not SessionPhase.SUBMITTED:
            raise SessionStateError()
        if self._session.blocked:
            self._retry_gate.force_block()
            self._notices.append(NO_RETRIES_LEFT_MESSAGE)
            raise RetryExhaustedError(NO_RETRIES_LEFT_MESSAGE)

        name = self._session.participant_name
        self._resetting = True
        self._phase = SessionPhase.CHECKING_ELIGIBILITY
        try:
            eligibility = await self._retry_gate.evaluate(name)
            if eligibility.blocked:
                self._phase = SessionPhase.SUBMITTED
                if not eligibility.verified:
                    self._notices.append(ELIGIBILITY_UNAVAILABLE_MESSAGE)
                    raise RetryExhaustedError(ELIGIBILITY_UNAVAILABLE_MESSAGE)
                self._session.blocked = True
                self._notices.append(NO_RETRIES_LEFT_MESSAGE)
                raise RetryExhaustedError(NO_RETRIES_LEFT_MESSAGE)

            self._store.clear(ATTEMPT_KEYS)
            self._coordinator.reset()
            self._ledger.reset()
            self._session = AttemptSession(participant_name=name)
            self._session.started_at = self._identity_gate.mark_started()
            if self._monitor is not None:
                self._monitor.reset()
            self._enter_active(self._prepare_questions())
        finally:
            self._resetting = False
        logger.info("Participant %r retrying quiz %s (%d left).", name, self._quiz.id, eligibility.retries_left)
        return eligibility

    def teardown(self) -> None:
        """Unsubscribe the timer and visibility listener."""
        if self._timer is not None:
            self._timer.stop()
        if self._monitor is not None:
            self._monitor.unsubscribe()

    async def settle(self) -> None:
        """Wait for auto-submissions spawned by the timer or monitor."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- View ---

    def describe(self) -> dict[str, Any]:
        """Plain-data view of the session for the participant page."""
        phase = self.phase
        eligibility = self._retry_gate.last
        show_questions = phase in (SessionPhase.ACTIVE, SessionPhase.SUBMITTING, SessionPhase.SUBMITTED)
        remaining = self.time_remaining_seconds()
        view: dict[str, Any] = {
            "phase": phase.value,
            "quiz": {
                "title": self._quiz.title,
                "question_count": len(self._source_questions),
                "duration_minutes": self._quiz.duration_minutes,
                "max_retries": self._quiz.max_retries,
                "show_answers": self._quiz.show_answers,
                "prevent_tab_switch": self._quiz.prevent_tab_switch,
                "tab_switch_warnings": self._quiz.tab_switch_warnings,
                "prevent_copy_paste": self._input_guard.enabled,
                "blocked_shortcut_keys": sorted(self._input_guard.blocked_keys) if self._input_guard.enabled else [],
            },
            "participant_name": self._session.participant_name,
            "questions": [
                {"id": q.id, "question_text": q.question_text, "options": list(q.options)}
                for q in self._session.questions
            ]
            if show_questions
            else [],
            "answers": dict(self._session.answers) if show_questions else {},
            "unanswered_count": self._ledger.unanswered_count if phase is SessionPhase.ACTIVE else 0,
            "time_remaining_seconds": remaining,
            "time_display": format_time(remaining) if remaining is not None else None,
            "tab_switch_count": self._session.tab_switch_count,
            "warnings_left": self._monitor.warnings_left() if self._monitor is not None else None,
            "retries_left": eligibility.retries_left if eligibility is not None else None,
            "blocked": self._session.blocked,
            "result": self._describe_result(),
            "notices": self.drain_notices(),
        }
        return view

    def _describe_result(self) -> dict[str, Any] | None:
        outcome = self._coordinator.outcome
        if outcome is None or self._phase is not SessionPhase.SUBMITTED:
            return None
        eligibility = outcome.eligibility
        return {
            "score": outcome.score,
            "total_questions": outcome.total_questions,
            "feedback": feedback_message(outcome.score, outcome.total_questions),
            "time_taken_seconds": outcome.record.time_taken_seconds,
            "persisted": outcome.persisted,
            "auto": outcome.auto,
            "correct_answers": correct_answer_key(self._session.questions) if self._quiz.show_answers else None,
            "retries_left": eligibility.retries_left if eligibility is not None else None,
            "can_retry": not self._session.blocked,
        }

    # --- Internals ---

    def _is_live(self) -> bool:
        return self._phase is SessionPhase.ACTIVE and not self._session.submitted

    def _prepare_questions(self) -> list[Question]:
        questions = list(self._source_questions)
        if self._quiz.randomise_questions:
            self._rng.shuffle(questions)
        self._store.set(SessionKey.QUESTIONS_SNAPSHOT, [q.to_dict() for q in questions])
        return questions

    def _restore_questions(self) -> list[Question]:
        snapshot = self._store.get(SessionKey.QUESTIONS_SNAPSHOT)
        if not snapshot:
            return self._prepare_questions()
        return [Question.from_dict(item) for item in snapshot]

    def _enter_active(self, questions: list[Question]) -> None:
        self._session.questions = questions
        self._session.submitted = False
        self._session.blocked = False
        self._ledger.bind_questions(q.id for q in questions)
        self._session.answers = self._ledger.load()
        self._phase = SessionPhase.ACTIVE
        if self._timer is not None:
            self._timer.resume()
            self._session.time_remaining_seconds = self._timer.remaining_seconds()
        if self._monitor is not None:
            self._monitor.subscribe()
            self._session.tab_switch_count = self._monitor.count()

    def _enter_submitted(self, outcome: SubmissionOutcome) -> None:
        self._phase = SessionPhase.SUBMITTED
        self.teardown()
        if not outcome.persisted:
            self._notices.append(SUBMISSION_NOT_SAVED_MESSAGE)

    def _enter_blocked(self, notice: str) -> None:
        self.teardown()
        self._phase = SessionPhase.BLOCKED
        self._session.blocked = True
        self._session.questions = []
        self._session.answers = {}
        self._store.clear(ATTEMPT_KEYS)
        self._notices.append(notice)

    def _on_timer_expired(self) -> None:
        self._trigger_auto_submit(TIME_UP_MESSAGE)

    def _on_integrity_threshold(self) -> None:
        self._trigger_auto_submit(TAB_SWITCH_AUTO_SUBMIT_MESSAGE)

    def _trigger_auto_submit(self, notice: str) -> None:
        if self._phase is not SessionPhase.ACTIVE:
            return
        logger.info("Auto-submitting quiz %s for %r: %s", self._quiz.id, self._session.participant_name, notice)
        self._notices.append(notice)
        task = self._spawn(self._auto_submit())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _auto_submit(self) -> None:
        try:
            await self.submit(auto=True)
        except (RetryExhaustedError, SessionStateError) as exc:
            logger.info("Auto-submit for quiz %s refused: %s", self._quiz.id, exc.message)
        except Exception:
            logger.exception("Auto-submit for quiz %s failed.", self._quiz.id)
