import pytest
from fastapi.testclient import TestClient

from conftest import make_questions
from quiz_session.constants.network_constants import SESSION_COOKIE_NAME
from quiz_session.core.models import Quiz
from quiz_session.core.services.quiz_repository import InMemoryQuizRepository
from quiz_session.core.session_registry import SessionRegistry, memory_store_factory
from quiz_session.server.api_server import create_api_app


@pytest.fixture
def repo():
    repository = InMemoryQuizRepository()
    repository.add_quiz(Quiz(id="quiz-a", title="Quiz A", share_token="quiz-a", max_retries=2), make_questions(3))
    repository.add_quiz(
        Quiz(
            id="quiz-b",
            title="Quiz B",
            share_token="quiz-b",
            prevent_tab_switch=True,
            tab_switch_warnings=2,
            show_answers=False,
        ),
        make_questions(3),
    )
    return repository


@pytest.fixture
def client(repo):
    app = create_api_app(SessionRegistry(repo, memory_store_factory()))
    with TestClient(app) as test_client:
        yield test_client


def _start(client, token="quiz-a", name="Ada"):
    response = client.post(f"/api/quiz/{token}/identity", json={"name": name})
    assert response.status_code == 200
    return response.json()


def test_state_before_identity_is_gated_and_sets_cookie(client):
    response = client.get("/api/quiz/quiz-a/state")

    assert response.status_code == 200
    assert SESSION_COOKIE_NAME in response.cookies
    body = response.json()
    assert body["phase"] == "gated"
    assert body["questions"] == []
    assert body["quiz"]["title"] == "Quiz A"


def test_unknown_token_is_not_found(client):
    response = client.get("/api/quiz/nope/state")

    assert response.status_code == 404
    assert "message" in response.json()["detail"]


def test_identity_starts_attempt_with_rendered_questions(client):
    body = _start(client)

    assert body["phase"] == "active"
    assert body["participant_name"] == "Ada"
    assert len(body["questions"]) == 3
    assert body["questions"][0]["question_html"].startswith("<p>")
    assert len(body["questions"][0]["options_html"]) == 4
    assert body["retries_left"] == 2


def test_blank_name_is_rejected(client):
    response = client.post("/api/quiz/quiz-a/identity", json={"name": "  "})

    assert response.status_code == 422
    assert client.get("/api/quiz/quiz-a/state").json()["phase"] == "gated"


def test_answer_then_confirm_unanswered_submit(client, repo):
    _start(client)

    answered = client.post("/api/quiz/quiz-a/answer", json={"question_id": "q1", "option_index": 1})
    assert answered.status_code == 200
    assert answered.json()["answers"] == {"q1": 1}

    bad = client.post("/api/quiz/quiz-a/answer", json={"question_id": "q1", "option_index": 7})
    assert bad.status_code == 422

    unconfirmed = client.post("/api/quiz/quiz-a/submit", json={})
    assert unconfirmed.status_code == 409
    assert unconfirmed.json()["detail"]["unanswered_count"] == 2

    submitted = client.post("/api/quiz/quiz-a/submit", json={"confirmed": True})
    assert submitted.status_code == 200
    result = submitted.json()["result"]
    assert result["score"] == 1
    assert result["total_questions"] == 3
    assert result["retries_left"] == 1
    assert result["correct_answers"] == {"q1": 1, "q2": 2, "q3": 3}
    assert len(repo.list_attempts("quiz-a")) == 1


def test_retry_until_exhausted(client):
    _start(client)
    client.post("/api/quiz/quiz-a/submit", json={"confirmed": True})

    retried = client.post("/api/quiz/quiz-a/retry")
    assert retried.status_code == 200
    assert retried.json()["phase"] == "active"

    client.post("/api/quiz/quiz-a/submit", json={"confirmed": True})
    exhausted = client.post("/api/quiz/quiz-a/retry")

    assert exhausted.status_code == 403
    assert client.get("/api/quiz/quiz-a/state").json()["blocked"] is True


def test_tab_switch_threshold_auto_submits(client, repo):
    _start(client, token="quiz-b")

    first = client.post("/api/quiz/quiz-b/visibility", json={"hidden": True}).json()
    assert first["phase"] == "active"
    assert first["warnings_left"] == 1
    assert first["notices"]

    client.post("/api/quiz/quiz-b/visibility", json={"hidden": False})
    second = client.post("/api/quiz/quiz-b/visibility", json={"hidden": True}).json()

    assert second["phase"] == "submitted"
    assert second["result"]["auto"] is True
    assert second["result"]["correct_answers"] is None
    records = repo.list_attempts("quiz-b")
    assert len(records) == 1
    assert records[0].tab_switch_count == 2


def test_sessions_are_isolated_per_cookie(client):
    _start(client)
    session_id = client.cookies.get(SESSION_COOKIE_NAME)

    client.cookies.clear()
    assert client.get("/api/quiz/quiz-a/state").json()["phase"] == "gated"

    client.cookies.clear()
    client.cookies.set(SESSION_COOKIE_NAME, session_id)
    assert client.get("/api/quiz/quiz-a/state").json()["phase"] == "active"


def test_participant_page_embeds_token(client):
    response = client.get("/quiz/quiz-a")

    assert response.status_code == 200
    assert "quiz-a" in response.text
    assert "__TOKEN__" not in response.text
