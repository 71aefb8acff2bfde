import asyncio

import pytest

from conftest import run
from quiz_session.core.errors import NotAvailableError
from quiz_session.core.models import SessionPhase
from quiz_session.core.services.session_store import JsonFileSessionStore, SessionKey
from quiz_session.core.session_registry import SessionRegistry, json_store_factory, memory_store_factory


def test_json_factory_sanitizes_file_names(tmp_path):
    store = json_store_factory(tmp_path)("../token", "abc/def")

    assert isinstance(store, JsonFileSessionStore)
    assert store.path.parent == tmp_path
    assert store.path.name == "___token__abc_def.json"


def test_memory_factory_reuses_store_per_session():
    factory = memory_store_factory()

    assert factory("t", "s1") is factory("t", "s1")
    assert factory("t", "s1") is not factory("t", "s2")


def test_concurrent_lookups_share_one_engine(repository, add_quiz, clock):
    add_quiz()
    registry = SessionRegistry(repository, memory_store_factory(), clock=clock)

    async def scenario():
        return await asyncio.gather(*(registry.get_engine("token", "s1") for _ in range(3)))

    engines = run(scenario())

    assert engines[0] is engines[1] is engines[2]
    assert len(registry) == 1


def test_unknown_token_is_not_cached(repository):
    registry = SessionRegistry(repository, memory_store_factory())

    with pytest.raises(NotAvailableError):
        run(registry.get_engine("missing", "s1"))
    assert len(registry) == 0


def test_discarded_session_resumes_from_disk(repository, add_quiz, clock, tmp_path):
    add_quiz()
    registry = SessionRegistry(repository, json_store_factory(tmp_path), clock=clock)

    async def scenario():
        engine = await registry.get_engine("token", "s1")
        await engine.confirm_identity("Ada")
        engine.select_answer("q2", 1)
        registry.discard("token", "s1")
        return await registry.get_engine("token", "s1")

    engine = run(scenario())

    assert engine.phase is SessionPhase.ACTIVE
    assert engine.session.answers == {"q2": 1}
    assert JsonFileSessionStore(tmp_path / "token__s1.json").get(SessionKey.PARTICIPANT_NAME) == "Ada"
    registry.close()
    assert len(registry) == 0


def test_idle_engine_is_evicted_and_resumes_from_store(repository, add_quiz, clock):
    add_quiz()
    registry = SessionRegistry(repository, memory_store_factory(), idle_timeout=60, clock=clock)

    async def scenario():
        first = await registry.get_engine("token", "s1")
        await first.confirm_identity("Ada")
        first.select_answer("q1", 2)
        clock.advance(61)
        await registry.get_engine("token", "s2")
        evicted = ("token", "s1") not in registry
        return first, evicted, await registry.get_engine("token", "s1")

    first, evicted, again = run(scenario())

    assert evicted
    assert again is not first
    assert again.phase is SessionPhase.ACTIVE
    assert again.session.answers == {"q1": 2}


def test_least_recently_used_engine_is_dropped_over_cap(repository, add_quiz, clock):
    add_quiz()
    registry = SessionRegistry(repository, memory_store_factory(), max_engines=2, clock=clock)

    async def scenario():
        for session_id in ("s1", "s2", "s1", "s3"):
            await registry.get_engine("token", session_id)

    run(scenario())

    assert len(registry) == 2
    assert ("token", "s1") in registry
    assert ("token", "s2") not in registry


def test_engine_mid_submission_is_never_evicted(repository, add_quiz, clock):
    add_quiz(max_retries=1)
    registry = SessionRegistry(repository, memory_store_factory(), max_engines=1, clock=clock)

    async def scenario():
        busy = await registry.get_engine("token", "s1")
        await busy.confirm_identity("Bo")
        repository.insert_gate = asyncio.Event()
        pending = asyncio.ensure_future(busy.submit(confirmed=True))
        await asyncio.sleep(0)
        await registry.get_engine("token", "s2")
        live_while_busy = len(registry)
        repository.insert_gate.set()
        await pending
        return live_while_busy, registry.evict_idle()

    live_while_busy, evicted = run(scenario())

    assert live_while_busy == 2
    assert evicted == 1
    assert ("token", "s1") not in registry
    assert len(repository.list_attempts("quiz-token")) == 1


def test_slow_open_does_not_hold_up_other_sessions(repository, add_quiz, clock):
    add_quiz()
    registry = SessionRegistry(repository, memory_store_factory(), clock=clock)

    async def scenario():
        gate = asyncio.Event()
        repository.fetch_gate = gate
        slow = asyncio.ensure_future(registry.get_engine("token", "s1"))
        await asyncio.sleep(0)
        other = await asyncio.wait_for(registry.get_engine("token", "s2"), 1)
        slow_done_first = slow.done()
        gate.set()
        return other, slow_done_first, await slow

    other, slow_done_first, slow_engine = run(scenario())

    assert not slow_done_first
    assert other is not slow_engine
    assert len(registry) == 2
