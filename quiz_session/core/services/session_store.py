"""Durable key/value storage for one attempt session.

Each engine component owns a disjoint subset of the keys (the ledger owns
``answers``, the timer owns ``timer_deadline``, the monitor owns
``tab_switch_count``), so writes never need cross-key transactions. The store
itself holds no policy; it only guarantees that a value written before a
reload or crash is there afterwards.
"""

from __future__ import annotations

from enum import Enum
import json
import logging
import os
from pathlib import Path
import tempfile
from threading import Lock
from typing import Any, Iterable

logger = logging.getLogger(__name__)


class SessionKey(str, Enum):
    PARTICIPANT_NAME = "participant_name"
    STARTED = "started"
    QUESTIONS_SNAPSHOT = "questions_snapshot"
    ANSWERS = "answers"
    TIMER_DEADLINE = "timer_deadline"
    TAB_SWITCH_COUNT = "tab_switch_count"
    SESSION_START_TIME = "session_start_time"


_KEY_TYPES: dict[SessionKey, tuple[type, ...]] = {
    SessionKey.PARTICIPANT_NAME: (str,),
    SessionKey.STARTED: (bool,),
    SessionKey.QUESTIONS_SNAPSHOT: (list,),
    SessionKey.ANSWERS: (dict,),
    SessionKey.TIMER_DEADLINE: (int, float),
    SessionKey.TAB_SWITCH_COUNT: (int,),
    SessionKey.SESSION_START_TIME: (int, float),
}

# Wiped together on submission and on retry. The participant name survives
# so the identity form can be pre-filled after a reload.
ATTEMPT_KEYS: tuple[SessionKey, ...] = (
    SessionKey.STARTED,
    SessionKey.QUESTIONS_SNAPSHOT,
    SessionKey.ANSWERS,
    SessionKey.TIMER_DEADLINE,
    SessionKey.TAB_SWITCH_COUNT,
    SessionKey.SESSION_START_TIME,
)


class SessionStore:
    """Typed get/set/clear over the session keys. Subclasses provide storage."""

    def get(self, key: SessionKey, default: Any = None) -> Any:
        data = self._read()
        return data.get(key.value, default)

    def set(self, key: SessionKey, value: Any) -> None:
        _check_type(key, value)
        data = self._read()
        data[key.value] = value
        self._write(data)

    def remove(self, key: SessionKey) -> None:
        data = self._read()
        if data.pop(key.value, None) is not None:
            self._write(data)

    def clear(self, keys: Iterable[SessionKey] | None = None) -> None:
        """Remove the given keys, or every key when none are given."""
        if keys is None:
            self._write({})
            return
        data = self._read()
        for key in keys:
            data.pop(key.value, None)
        self._write(data)

    def snapshot(self) -> dict[str, Any]:
        return dict(self._read())

    def _read(self) -> dict[str, Any]:
        raise NotImplementedError

    def _write(self, data: dict[str, Any]) -> None:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """Process-local store. Survives engine re-creation, not process exit."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = json.loads(json.dumps(initial or {}))

    def _read(self) -> dict[str, Any]:
        # Round-trip through JSON so callers never share mutable values with the store.
        return json.loads(json.dumps(self._data))

    def _write(self, data: dict[str, Any]) -> None:
        self._data = json.loads(json.dumps(data))


class JsonFileSessionStore(SessionStore):
    """Store backed by one JSON document, replaced atomically on every write."""

    def __init__(self, file_path: Path) -> None:
        self._path = Path(file_path)
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        with self._lock:
            if not self._path.exists():
                return {}
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.warning("Session file %s is unreadable; starting empty.", self._path)
                return {}
            if not isinstance(data, dict):
                logger.warning("Session file %s does not hold an object; starting empty.", self._path)
                return {}
            return data

    def _write(self, data: dict[str, Any]) -> None:
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=self._path.name, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise


def _check_type(key: SessionKey, value: Any) -> None:
    expected = _KEY_TYPES[key]
    # bool is an int subclass; only STARTED may hold one.
    if isinstance(value, bool) and bool not in expected:
        raise TypeError(f"{key.value} cannot hold a boolean.")
    if not isinstance(value, expected):
        names = ", ".join(t.__name__ for t in expected)
        raise TypeError(f"{key.value} must be of type {names}, got {type(value).__name__}.")
