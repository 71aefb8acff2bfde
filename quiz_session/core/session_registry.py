"""Keeps one attempt engine per browser session and quiz."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
import logging
import re
import time
from pathlib import Path
from typing import Any, Callable

from quiz_session.constants.session_constants import MAX_LIVE_SESSIONS, SESSION_IDLE_TIMEOUT_SECONDS
from quiz_session.core.attempt_engine import AttemptEngine
from quiz_session.core.services.quiz_repository import QuizCollaborator
from quiz_session.core.services.session_store import JsonFileSessionStore, MemorySessionStore, SessionStore

logger = logging.getLogger(__name__)

StoreFactory = Callable[[str, str], SessionStore]
SessionId = tuple[str, str]

_SAFE_NAME = re.compile(r"[^A-Za-z0-9_-]")


def json_store_factory(directory: Path) -> StoreFactory:
    """One JSON file per (share token, session id) under ``directory``."""

    def factory(share_token: str, session_id: str) -> SessionStore:
        file_name = f"{_SAFE_NAME.sub('_', share_token)}__{_SAFE_NAME.sub('_', session_id)}.json"
        return JsonFileSessionStore(Path(directory) / file_name)

    return factory


def memory_store_factory() -> StoreFactory:
    stores: dict[tuple[str, str], SessionStore] = {}

    def factory(share_token: str, session_id: str) -> SessionStore:
        return stores.setdefault((share_token, session_id), MemorySessionStore())

    return factory


class SessionRegistry:
    """Creates, resumes and evicts engines on demand.

    Engines idle past ``idle_timeout`` and the least recently used ones beyond
    ``max_engines`` are torn down; their stores keep the state, so the next
    request for that session resumes a fresh engine.
    """

    def __init__(
        self,
        collaborator: QuizCollaborator,
        store_factory: StoreFactory,
        *,
        idle_timeout: float = SESSION_IDLE_TIMEOUT_SECONDS,
        max_engines: int = MAX_LIVE_SESSIONS,
        **engine_options: Any,
    ) -> None:
        self._collaborator = collaborator
        self._store_factory = store_factory
        self._idle_timeout = idle_timeout
        self._max_engines = max_engines
        self._clock = engine_options.get("clock", time.time)
        self._engine_options = engine_options
        self._engines: OrderedDict[SessionId, AttemptEngine] = OrderedDict()
        self._last_seen: dict[SessionId, float] = {}
        self._locks: dict[SessionId, asyncio.Lock] = {}

    @property
    def collaborator(self) -> QuizCollaborator:
        return self._collaborator

    async def get_engine(self, share_token: str, session_id: str) -> AttemptEngine:
        key = (share_token, session_id)
        engine = self._engines.get(key)
        if engine is None:
            lock = self._locks.setdefault(key, asyncio.Lock())
            try:
                async with lock:
                    engine = self._engines.get(key)
                    if engine is None:
                        store = self._store_factory(share_token, session_id)
                        engine = await AttemptEngine.open(
                            self._collaborator, share_token, store, **self._engine_options
                        )
                        self._engines[key] = engine
                        logger.info(
                            "Opened session %s for quiz token %s (%s).", session_id, share_token, engine.phase.value
                        )
            finally:
                if self._locks.get(key) is lock:
                    del self._locks[key]

        self._engines.move_to_end(key)
        self._last_seen[key] = self._clock()
        self.evict_idle(keep=key)
        return engine

    def evict_idle(self, keep: SessionId | None = None) -> int:
        """Tear down idle and surplus engines; returns how many were dropped."""
        now = self._clock()
        surplus = len(self._engines) - self._max_engines
        evicted = 0
        for key, engine in list(self._engines.items()):
            idle = now - self._last_seen.get(key, now) > self._idle_timeout
            if not idle and surplus <= 0:
                continue
            if key == keep or engine.is_busy:
                continue
            self.discard(*key)
            surplus -= 1
            evicted += 1
        if evicted:
            logger.info("Evicted %d idle session(s); %d live.", evicted, len(self._engines))
        return evicted

    def discard(self, share_token: str, session_id: str) -> None:
        key = (share_token, session_id)
        self._last_seen.pop(key, None)
        engine = self._engines.pop(key, None)
        if engine is not None:
            engine.teardown()

    def close(self) -> None:
        for engine in self._engines.values():
            engine.teardown()
        self._engines.clear()
        self._last_seen.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._engines

    def __len__(self) -> int:
        return len(self._engines)
