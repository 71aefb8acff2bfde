import asyncio
import random

import pytest

from quiz_session.core.attempt_engine import AttemptEngine
from quiz_session.core.errors import CollaboratorError
from quiz_session.core.models import Question, Quiz
from quiz_session.core.services.quiz_repository import InMemoryQuizRepository
from quiz_session.core.services.session_store import MemorySessionStore


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeHandle:
    def __init__(self, due, callback, args):
        self.due = due
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Manual stand-in for the event loop's call_later, driven by FakeClock."""

    def __init__(self, clock):
        self.clock = clock
        self.handles = []

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self.clock.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds):
        target = self.clock.now + seconds
        while True:
            due = [h for h in self.pending() if h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self.handles.remove(handle)
            self.clock.now = max(self.clock.now, handle.due)
            handle.callback(*handle.args)
        self.clock.now = target


class FlakyRepository(InMemoryQuizRepository):
    def __init__(self):
        super().__init__()
        self.fail_count = False
        self.fail_insert = False
        self.insert_gate = None
        self.fetch_gate = None
        self.insert_calls = 0
        self.count_calls = 0

    async def fetch_quiz_by_share_token(self, share_token):
        # Holds only the next lookup.
        gate, self.fetch_gate = self.fetch_gate, None
        if gate is not None:
            await gate.wait()
        return await super().fetch_quiz_by_share_token(share_token)

    async def count_attempts(self, quiz_id, participant_name):
        self.count_calls += 1
        if self.fail_count:
            raise CollaboratorError("count unavailable")
        return await super().count_attempts(quiz_id, participant_name)

    async def insert_attempt(self, record):
        self.insert_calls += 1
        if self.insert_gate is not None:
            await self.insert_gate.wait()
        if self.fail_insert:
            raise CollaboratorError("insert failed")
        await super().insert_attempt(record)


def make_questions(count=5):
    return [
        Question(
            id=f"q{index}",
            question_text=f"Question {index}?",
            options=[f"Option {index}-{letter}" for letter in "ABCD"],
            correct_option_index=index % 4,
            order_num=index,
        )
        for index in range(1, count + 1)
    ]


def correct_answers(questions):
    return {q.id: q.correct_option_index for q in questions}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)


@pytest.fixture
def repository():
    return FlakyRepository()


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def add_quiz(repository):
    def _add(token="token", count=5, **settings):
        quiz = Quiz(id=f"quiz-{token}", title=f"Quiz {token}", share_token=token, **settings)
        return repository.add_quiz(quiz, make_questions(count))

    return _add


@pytest.fixture
def open_engine(repository, clock, scheduler):
    async def _open(token="token", store=None, **options):
        options.setdefault("clock", clock)
        options.setdefault("scheduler", scheduler)
        options.setdefault("rng", random.Random(7))
        return await AttemptEngine.open(repository, token, store if store is not None else MemorySessionStore(), **options)

    return _open


def run(coro):
    return asyncio.run(coro)
