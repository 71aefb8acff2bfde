"""Participant name capture and start of an attempt."""

from __future__ import annotations

import logging
import time

from quiz_session.core.errors import NameRequiredError
from quiz_session.core.models import Eligibility
from quiz_session.core.services.countdown_timer import Clock
from quiz_session.core.services.retry_gate import RetryGate
from quiz_session.core.services.session_store import SessionKey, SessionStore

logger = logging.getLogger(__name__)


class IdentityGate:
    """Persists the participant name and marks the session started when eligible."""

    def __init__(self, store: SessionStore, retry_gate: RetryGate, *, clock: Clock = time.time) -> None:
        self._store = store
        self._retry_gate = retry_gate
        self._clock = clock

    def remembered_name(self) -> str:
        return self._store.get(SessionKey.PARTICIPANT_NAME, "")

    async def confirm(self, name: str) -> tuple[str, Eligibility]:
        """Return the trimmed name and its eligibility; start the session if allowed."""
        cleaned = (name or "").strip()
        if not cleaned:
            raise NameRequiredError()

        self._store.set(SessionKey.PARTICIPANT_NAME, cleaned)
        eligibility = await self._retry_gate.evaluate(cleaned)
        if not eligibility.blocked:
            self.mark_started()
            logger.info("Participant %r passed the identity gate.", cleaned)
        return cleaned, eligibility

    def mark_started(self) -> float:
        started_at = self._clock()
        self._store.set(SessionKey.STARTED, True)
        self._store.set(SessionKey.SESSION_START_TIME, started_at)
        return started_at
