"""Tab-switch detection and copy/paste suppression.

Both signals are observed by the participant's browser and are advisory only.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable

from quiz_session.constants.session_constants import BLOCKED_SHORTCUT_KEYS
from quiz_session.core.services.session_store import SessionKey, SessionStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class IntegrityWarning:
    tab_switch_count: int
    warnings_left: int
    threshold_reached: bool


class IntegrityMonitor:
    """Counts transitions into the hidden state and escalates at a threshold."""

    def __init__(
        self,
        store: SessionStore,
        threshold: int,
        on_threshold: Callable[[], None],
        *,
        is_live: Callable[[], bool] = lambda: True,
    ) -> None:
        self._store = store
        self._threshold = threshold
        self._on_threshold = on_threshold
        self._is_live = is_live
        self._subscribed = False

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    def subscribe(self) -> None:
        self._subscribed = True

    def unsubscribe(self) -> None:
        self._subscribed = False

    def count(self) -> int:
        return int(self._store.get(SessionKey.TAB_SWITCH_COUNT, 0))

    def warnings_left(self) -> int:
        return max(self._threshold - self.count(), 0)

    def reset(self) -> None:
        self._store.set(SessionKey.TAB_SWITCH_COUNT, 0)

    def handle_visibility_change(self, hidden: bool) -> IntegrityWarning | None:
        if not hidden or not self._subscribed or not self._is_live():
            return None

        # Increment the persisted value, not a local copy, so a reload between
        # two events cannot lose a count.
        count = self.count() + 1
        self._store.set(SessionKey.TAB_SWITCH_COUNT, count)
        reached = count >= self._threshold
        warning = IntegrityWarning(
            tab_switch_count=count,
            warnings_left=max(self._threshold - count, 0),
            threshold_reached=reached,
        )
        logger.info("Tab switch %d of %d detected.", count, self._threshold)
        if reached:
            self._on_threshold()
        return warning


@dataclass(slots=True, frozen=True)
class InputGuard:
    """Suppresses clipboard shortcuts and the context menu when enabled."""

    enabled: bool
    blocked_keys: frozenset[str] = BLOCKED_SHORTCUT_KEYS

    def should_suppress_key(self, key: str, *, ctrl: bool = False, meta: bool = False) -> bool:
        if not self.enabled or not (ctrl or meta):
            return False
        return key.lower() in self.blocked_keys

    def should_suppress_context_menu(self) -> bool:
        return self.enabled
