"""Retry budget derived from the remote attempt count."""

from __future__ import annotations

import logging

from quiz_session.core.errors import CollaboratorError
from quiz_session.core.models import Eligibility, Quiz
from quiz_session.core.services.quiz_repository import QuizCollaborator

logger = logging.getLogger(__name__)


def effective_limit(max_retries: int) -> int:
    """A quiz configured with zero retries still allows one attempt."""
    return 1 if max_retries == 0 else max_retries


def compute_eligibility(attempt_count: int, max_retries: int, *, verified: bool = True) -> Eligibility:
    limit = effective_limit(max_retries)
    return Eligibility(
        attempt_count=attempt_count,
        effective_limit=limit,
        blocked=attempt_count >= limit,
        retries_left=max(limit - attempt_count, 0),
        verified=verified,
    )


class RetryGate:
    """Decides whether an identity may start or resubmit an attempt.

    Identity is the bare participant name, matched exactly by the
    collaborator. When the count query fails the gate blocks (fail closed)
    unless constructed with ``fail_closed=False``, in which case the failure
    counts as zero prior attempts.
    """

    def __init__(self, collaborator: QuizCollaborator, quiz: Quiz, *, fail_closed: bool = True) -> None:
        self._collaborator = collaborator
        self._quiz = quiz
        self._fail_closed = fail_closed
        self._last: Eligibility | None = None

    @property
    def last(self) -> Eligibility | None:
        return self._last

    @property
    def blocked(self) -> bool:
        return self._last is not None and self._last.blocked

    async def evaluate(self, participant_name: str) -> Eligibility:
        try:
            count = await self._collaborator.count_attempts(self._quiz.id, participant_name)
        except CollaboratorError as exc:
            eligibility = self._unverified(exc)
        except Exception as exc:
            logger.exception("Unexpected failure counting attempts for quiz %s.", self._quiz.id)
            eligibility = self._unverified(exc)
        else:
            eligibility = compute_eligibility(count, self._quiz.max_retries)

        self._last = eligibility
        if eligibility.blocked and eligibility.verified:
            logger.info("Participant %r is out of attempts for quiz %s.", participant_name, self._quiz.id)
        return eligibility

    def _unverified(self, exc: Exception) -> Eligibility:
        if self._fail_closed:
            logger.warning("Attempt count for quiz %s failed; blocking: %s", self._quiz.id, exc)
            limit = effective_limit(self._quiz.max_retries)
            return Eligibility(attempt_count=limit, effective_limit=limit, blocked=True, retries_left=0, verified=False)
        logger.warning("Attempt count for quiz %s failed; assuming none: %s", self._quiz.id, exc)
        return compute_eligibility(0, self._quiz.max_retries, verified=False)

    async def refresh(self, participant_name: str) -> Eligibility | None:
        """Re-query for display only; a failed query keeps the previous result."""
        previous = self._last
        eligibility = await self.evaluate(participant_name)
        if not eligibility.verified:
            self._last = previous
            return previous
        return eligibility

    def force_block(self) -> Eligibility:
        """Mark the identity blocked without waiting for a fresh count."""
        limit = effective_limit(self._quiz.max_retries)
        previous = self._last
        self._last = Eligibility(
            attempt_count=max(previous.attempt_count if previous else 0, limit),
            effective_limit=limit,
            blocked=True,
            retries_left=0,
            verified=previous.verified if previous else False,
        )
        return self._last
