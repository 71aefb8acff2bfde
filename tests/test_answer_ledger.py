import pytest

from quiz_session.core.errors import InvalidAnswerError
from quiz_session.core.services.answer_ledger import AnswerLedger
from quiz_session.core.services.session_store import MemorySessionStore, SessionKey


def test_selection_is_persisted_immediately_and_overwrites():
    store = MemorySessionStore()
    ledger = AnswerLedger(store, ["q1", "q2", "q3"])

    ledger.select_answer("q1", 2)
    ledger.select_answer("q1", 0)
    ledger.select_answer("q2", 3)

    assert store.get(SessionKey.ANSWERS) == {"q1": 0, "q2": 3}
    assert ledger.answered_count == 2
    assert ledger.unanswered_count == 1


def test_locked_ledger_ignores_selection():
    store = MemorySessionStore()
    ledger = AnswerLedger(store, ["q1"], is_locked=lambda: True)

    assert ledger.select_answer("q1", 1) is False
    assert store.get(SessionKey.ANSWERS) is None


@pytest.mark.parametrize("question_id, option_index", [("missing", 0), ("q1", 4), ("q1", -1), ("q1", True)])
def test_invalid_selection_is_rejected(question_id, option_index):
    ledger = AnswerLedger(MemorySessionStore(), ["q1"])
    with pytest.raises(InvalidAnswerError):
        ledger.select_answer(question_id, option_index)


def test_load_drops_answers_for_unknown_questions():
    store = MemorySessionStore({"answers": {"q1": 1, "gone": 2}})
    ledger = AnswerLedger(store, ["q1", "q2"])

    assert ledger.load() == {"q1": 1}
    assert ledger.unanswered_count == 1


def test_reset_clears_memory_and_store():
    store = MemorySessionStore()
    ledger = AnswerLedger(store, ["q1"])
    ledger.select_answer("q1", 1)
    ledger.reset()
    assert ledger.answers == {}
    assert store.get(SessionKey.ANSWERS) is None
