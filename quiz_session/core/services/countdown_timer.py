"""Deadline-based countdown for timed quizzes.

The persisted absolute deadline is the only source of truth. The one-second
tick never decrements a counter; it re-reads the clock and recomputes the
remaining time, so reloads cannot add time and a throttled or suspended loop
cannot drift.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Callable, Protocol

from quiz_session.constants.session_constants import TIMER_TICK_SECONDS
from quiz_session.core.services.session_store import SessionKey, SessionStore

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


def format_time(seconds: int) -> str:
    minutes, secs = divmod(max(int(seconds), 0), 60)
    return f"{minutes}:{secs:02d}"


class CountdownTimer:
    """Counts down to a stored deadline and fires ``on_expire`` once at zero."""

    def __init__(
        self,
        store: SessionStore,
        duration_seconds: int,
        on_expire: Callable[[], None],
        *,
        clock: Clock = time.time,
        scheduler: Scheduler | None = None,
        is_live: Callable[[], bool] = lambda: True,
    ) -> None:
        self._store = store
        self._duration = duration_seconds
        self._on_expire = on_expire
        self._clock = clock
        self._scheduler = scheduler
        self._is_live = is_live
        self._handle: TimerHandle | None = None
        self._running = False
        self._expired = False
        self._display_seconds: int | None = None

    @property
    def duration_seconds(self) -> int:
        return self._duration

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def has_expired(self) -> bool:
        return self._expired

    @property
    def display_seconds(self) -> int | None:
        return self._display_seconds

    def deadline(self) -> float | None:
        return self._store.get(SessionKey.TIMER_DEADLINE)

    def arm(self) -> float:
        """Persist a fresh deadline of now + duration and start ticking."""
        deadline = self._clock() + self._duration
        self._store.set(SessionKey.TIMER_DEADLINE, deadline)
        self._expired = False
        self._start()
        return deadline

    def resume(self) -> None:
        """Continue from the stored deadline, arming one if none exists."""
        if self.deadline() is None:
            self.arm()
            return
        self._expired = False
        self._start()

    def stop(self) -> None:
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def remaining_seconds(self) -> int:
        deadline = self.deadline()
        if deadline is None:
            return self._duration
        return max(math.ceil(deadline - self._clock()), 0)

    def elapsed_seconds(self) -> int:
        deadline = self.deadline()
        if deadline is None:
            return 0
        remaining = max(deadline - self._clock(), 0.0)
        return round(self._duration - remaining)

    def tick(self) -> None:
        """Scheduled callback; also safe to call directly."""
        self._handle = None
        if not self._running:
            return
        if not self._is_live():
            self.stop()
            return

        self._display_seconds = self.remaining_seconds()
        if self._display_seconds > 0:
            self._schedule(min(TIMER_TICK_SECONDS, float(self._display_seconds)))
            return

        self.stop()
        if self._expired:
            return
        self._expired = True
        logger.info("Countdown reached zero.")
        self._on_expire()

    def _start(self) -> None:
        self.stop()
        self._running = True
        self._display_seconds = self.remaining_seconds()
        # An already-expired deadline still goes through the scheduler so the
        # expiry callback never runs inside the caller's stack.
        self._schedule(0 if self._display_seconds == 0 else min(TIMER_TICK_SECONDS, float(self._display_seconds)))

    def _schedule(self, delay: float) -> None:
        scheduler = self._scheduler or asyncio.get_running_loop()
        self._handle = scheduler.call_later(delay, self.tick)
