"""FastAPI server that exposes the participant endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import Any, AsyncIterator
from urllib.parse import quote
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field
import uvicorn

from quiz_session.constants.about import APP_NAME
from quiz_session.constants.network_constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    SESSION_COOKIE_MAX_AGE_SECONDS,
    SESSION_COOKIE_NAME,
)
from quiz_session.core.attempt_engine import AttemptEngine
from quiz_session.core.errors import (
    AttemptError,
    NotAvailableError,
    RetryExhaustedError,
    SessionStateError,
    UnansweredQuestionsError,
)
from quiz_session.core.markdown_math_renderer import MATHJAX_SCRIPT_URL, renderer
from quiz_session.core.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


def _ensure_session_id(request: Request, response: Response) -> str:
  session_id = request.cookies.get(SESSION_COOKIE_NAME)
  if session_id:
    return session_id
  session_id = uuid4().hex
  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=session_id,
    max_age=SESSION_COOKIE_MAX_AGE_SECONDS,
    samesite="lax",
    httponly=True,
  )
  return session_id


_PARTICIPANT_PAGE_HTML = """<!doctype html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <title>__APP_NAME__</title>
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
    <style>
      :root { font-family: 'Inter', system-ui, sans-serif; background: #0b1120; color: #f5f7ff; }
      body { margin: 0; padding: 1.5rem; display: flex; flex-direction: column; gap: 1rem; max-width: 48rem; margin-inline: auto; }
      body.no-copy { user-select: none; -webkit-user-select: none; }
      .card { background: #111a30; border-radius: 0.75rem; padding: 1.5rem; box-shadow: 0 0.5rem 1.5rem rgba(0, 0, 0, 0.4); }
      .hidden { display: none; }
      header { display: flex; justify-content: space-between; align-items: center; }
      #timer { font-weight: 600; color: #facc15; }
      input { width: 100%; box-sizing: border-box; padding: 0.75rem; border-radius: 0.5rem; border: 1px solid #334155; background: #0b1120; color: inherit; }
      .primary-button { border: none; border-radius: 0.75rem; padding: 0.85rem 1.5rem; font-size: 1rem; background: #1f9aa5; color: #fff; cursor: pointer; margin-top: 1rem; }
      .primary-button:disabled { opacity: 0.6; cursor: not-allowed; }
      .options-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(180px, 1fr)); gap: 0.75rem; }
      .option-button { border: 2px solid transparent; border-radius: 0.75rem; padding: 0.85rem; font-size: 1rem; background: #1e293b; color: #fff; cursor: pointer; text-align: left; }
      .option-button.selected { border-color: #1f9aa5; background: #134e52; }
      .option-button.correct { border-color: #4ade80; }
      .option-button.wrong { border-color: #f87171; }
      .option-button:disabled { cursor: default; }
      #notices p { margin: 0.25rem 0; color: #f87171; }
      .muted { color: #94a3b8; }
    </style>
    <script>
      window.MathJax = { tex: { inlineMath: [['$','$']], displayMath: [['$$','$$']] }, svg: { fontCache: 'global' } };
    </script>
    <script defer src=\"__MATHJAX__\"></script>
  </head>
  <body>
    <header><h1 id=\"title\">__APP_NAME__</h1><span id=\"timer\"></span></header>
    <section id=\"notices\"></section>
    <section class=\"card hidden\" id=\"unavailable-card\">
      <h2>Quiz Not Available</h2>
      <p class=\"muted\">This quiz link is invalid or sharing has been disabled by the creator.</p>
    </section>
    <section class=\"card hidden\" id=\"gate-card\">
      <h2>Enter Your Name</h2>
      <p class=\"muted\">You must enter your name before attempting this quiz.</p>
      <input id=\"name-input\" placeholder=\"Your full name\" />
      <p id=\"blocked-message\" class=\"hidden\">Retry limit reached. You cannot attempt again.</p>
      <button id=\"start-button\" class=\"primary-button\">Start Quiz</button>
    </section>
    <section class=\"card hidden\" id=\"result-card\">
      <h2 id=\"result-score\"></h2>
      <p id=\"result-feedback\" class=\"muted\"></p>
      <p id=\"result-retries\" class=\"muted\"></p>
      <button id=\"retry-button\" class=\"primary-button hidden\">Retry Quiz</button>
    </section>
    <section id=\"questions\"></section>
    <button id=\"submit-button\" class=\"primary-button hidden\">Submit Answers</button>
    <script>
      const apiBase = '/api/quiz/__TOKEN__';
      const el = (id) => document.getElementById(id);
      let state = null;
      let countdownHandle = null;
      let blockedKeys = [];

      function show(id, visible) { el(id).classList.toggle('hidden', !visible); }

      async function call(path, body) {
        const response = await fetch(apiBase + path, {
          method: body === undefined ? 'GET' : 'POST',
          headers: { 'Content-Type': 'application/json' },
          body: body === undefined ? undefined : JSON.stringify(body),
        });
        const payload = await response.json();
        return { ok: response.ok, status: response.status, payload };
      }

      function renderNotices(notices) {
        const container = el('notices');
        container.innerHTML = '';
        (notices || []).forEach((text) => {
          const p = document.createElement('p');
          p.textContent = text;
          container.appendChild(p);
        });
      }

      function startCountdown(seconds) {
        if (countdownHandle) { clearInterval(countdownHandle); countdownHandle = null; }
        if (seconds === null || seconds === undefined) { el('timer').textContent = ''; return; }
        const deadline = Date.now() + seconds * 1000;
        const paint = () => {
          const left = Math.max(0, Math.ceil((deadline - Date.now()) / 1000));
          el('timer').textContent = `${Math.floor(left / 60)}:${String(left % 60).padStart(2, '0')}`;
          if (left === 0) { clearInterval(countdownHandle); countdownHandle = null; setTimeout(refresh, 500); }
        };
        paint();
        countdownHandle = setInterval(paint, 1000);
      }

      function renderQuestions(view) {
        const container = el('questions');
        container.innerHTML = '';
        const result = view.result;
        view.questions.forEach((question, index) => {
          const card = document.createElement('div');
          card.className = 'card';
          card.innerHTML = `<div class=\"muted\">${index + 1}.</div>${question.question_html}`;
          const grid = document.createElement('div');
          grid.className = 'options-grid';
          question.options_html.forEach((optionHtml, optionIndex) => {
            const button = document.createElement('button');
            button.className = 'option-button';
            button.innerHTML = `${String.fromCharCode(65 + optionIndex)}. ${optionHtml}`;
            const selected = view.answers[question.id] === optionIndex;
            if (selected) button.classList.add('selected');
            if (result && result.correct_answers) {
              const correct = result.correct_answers[question.id] === optionIndex;
              if (correct) button.classList.add('correct');
              else if (selected) button.classList.add('wrong');
            }
            button.disabled = view.phase !== 'active';
            button.addEventListener('click', () => selectAnswer(question.id, optionIndex));
            grid.appendChild(button);
          });
          card.appendChild(grid);
          container.appendChild(card);
        });
        if (window.MathJax && window.MathJax.typesetPromise) { window.MathJax.typesetPromise([container]); }
      }

      function render(view) {
        state = view;
        el('title').textContent = view.quiz.title;
        blockedKeys = view.quiz.blocked_shortcut_keys || [];
        document.body.classList.toggle('no-copy', view.quiz.prevent_copy_paste);
        renderNotices(view.notices);
        const gated = ['gated', 'checking_eligibility', 'blocked'].includes(view.phase);
        show('gate-card', gated);
        show('blocked-message', view.phase === 'blocked');
        el('start-button').disabled = view.phase !== 'gated';
        if (gated && !el('name-input').value) { el('name-input').value = view.participant_name || ''; }
        show('submit-button', view.phase === 'active');
        show('result-card', Boolean(view.result));
        if (view.result) {
          el('result-score').textContent = `You scored ${view.result.score}/${view.result.total_questions}`;
          el('result-feedback').textContent = view.result.feedback;
          const retries = view.result.retries_left;
          el('result-retries').textContent = retries === null ? '' : `Retries left: ${retries}`;
          show('retry-button', view.result.can_retry);
        }
        renderQuestions(view);
        startCountdown(view.time_remaining_seconds);
      }

      function renderUnavailable() {
        ['gate-card', 'result-card', 'submit-button'].forEach((id) => show(id, false));
        show('unavailable-card', true);
        el('questions').innerHTML = '';
      }

      async function handle(result) {
        if (result.status === 404) { renderUnavailable(); return; }
        if (result.ok) { render(result.payload); return; }
        renderNotices([result.payload.detail && result.payload.detail.message || result.payload.detail]);
      }

      async function refresh() { await handle(await call('/state')); }

      async function selectAnswer(questionId, optionIndex) {
        await handle(await call('/answer', { question_id: questionId, option_index: optionIndex }));
      }

      async function submitAnswers(confirmed) {
        const result = await call('/submit', { confirmed });
        if (result.status === 409 && result.payload.detail && result.payload.detail.unanswered_count) {
          if (window.confirm(result.payload.detail.message)) { await submitAnswers(true); }
          return;
        }
        await handle(result);
      }

      el('start-button').addEventListener('click', async () => {
        await handle(await call('/identity', { name: el('name-input').value }));
      });
      el('submit-button').addEventListener('click', () => submitAnswers(false));
      el('retry-button').addEventListener('click', async () => { await handle(await call('/retry', {})); });

      document.addEventListener('visibilitychange', async () => {
        if (!state || state.phase !== 'active' || !state.quiz.prevent_tab_switch) return;
        await handle(await call('/visibility', { hidden: document.hidden }));
      });
      document.addEventListener('keydown', (event) => {
        if ((event.ctrlKey || event.metaKey) && blockedKeys.includes(event.key.toLowerCase())) { event.preventDefault(); }
      });
      document.addEventListener('contextmenu', (event) => {
        if (state && state.quiz.prevent_copy_paste) { event.preventDefault(); }
      }, true);

      refresh();
    </script>
  </body>
</html>
"""


class IdentityPayload(BaseModel):
    name: str


class AnswerPayload(BaseModel):
    question_id: str
    option_index: int = Field(ge=0, le=3)


class VisibilityPayload(BaseModel):
    hidden: bool


class SubmitPayload(BaseModel):
    confirmed: bool = False


def _render_view(engine: AttemptEngine) -> dict[str, Any]:
    view = engine.describe()
    for question in view["questions"]:
        question["question_html"], question["options_html"] = renderer.render_question(
            question["question_text"], question["options"]
        )
    return view


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotAvailableError):
        return HTTPException(status_code=404, detail={"message": exc.message})
    if isinstance(exc, RetryExhaustedError):
        return HTTPException(status_code=403, detail={"message": exc.message})
    if isinstance(exc, UnansweredQuestionsError):
        return HTTPException(
            status_code=409, detail={"message": exc.message, "unanswered_count": exc.unanswered_count}
        )
    if isinstance(exc, (SessionStateError, AttemptError)):
        return HTTPException(status_code=409, detail={"message": exc.message})
    return HTTPException(status_code=422, detail={"message": str(exc)})


def create_api_app(registry: SessionRegistry) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        registry.close()

    app = FastAPI(title=f"{APP_NAME} Participant API", lifespan=lifespan)

    async def engine_dependency(share_token: str, request: Request, response: Response) -> AttemptEngine:
        session_id = _ensure_session_id(request, response)
        try:
            return await registry.get_engine(share_token, session_id)
        except NotAvailableError as exc:
            raise _http_error(exc) from exc

    @app.get("/quiz/{share_token}", response_class=HTMLResponse)
    def serve_participant_page(share_token: str) -> str:
        return (
            _PARTICIPANT_PAGE_HTML.replace("__APP_NAME__", APP_NAME)
            .replace("__MATHJAX__", MATHJAX_SCRIPT_URL)
            .replace("__TOKEN__", quote(share_token, safe=""))
        )

    @app.get("/api/quiz/{share_token}/state")
    async def get_state(engine: AttemptEngine = Depends(engine_dependency)) -> dict[str, Any]:
        return _render_view(engine)

    @app.post("/api/quiz/{share_token}/identity")
    async def confirm_identity(
        payload: IdentityPayload,
        engine: AttemptEngine = Depends(engine_dependency),
    ) -> dict[str, Any]:
        try:
            await engine.confirm_identity(payload.name)
        except (AttemptError, ValueError) as exc:
            raise _http_error(exc) from exc
        return _render_view(engine)

    @app.post("/api/quiz/{share_token}/answer")
    async def select_answer(
        payload: AnswerPayload,
        engine: AttemptEngine = Depends(engine_dependency),
    ) -> dict[str, Any]:
        try:
            engine.select_answer(payload.question_id, payload.option_index)
        except (AttemptError, ValueError) as exc:
            raise _http_error(exc) from exc
        return _render_view(engine)

    @app.post("/api/quiz/{share_token}/visibility")
    async def report_visibility(
        payload: VisibilityPayload,
        engine: AttemptEngine = Depends(engine_dependency),
    ) -> dict[str, Any]:
        engine.handle_visibility_change(payload.hidden)
        # Let a threshold auto-submit finish before answering.
        await engine.settle()
        return _render_view(engine)

    @app.post("/api/quiz/{share_token}/submit")
    async def submit_answers(
        payload: SubmitPayload,
        engine: AttemptEngine = Depends(engine_dependency),
    ) -> dict[str, Any]:
        try:
            await engine.submit(confirmed=payload.confirmed)
        except AttemptError as exc:
            raise _http_error(exc) from exc
        return _render_view(engine)

    @app.post("/api/quiz/{share_token}/retry")
    async def retry_quiz(engine: AttemptEngine = Depends(engine_dependency)) -> dict[str, Any]:
        try:
            await engine.retry()
        except AttemptError as exc:
            raise _http_error(exc) from exc
        return _render_view(engine)

    return app


def start_api_server(
    registry: SessionRegistry,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Run the participant API in the foreground until interrupted."""
    app = create_api_app(registry)
    logger.info("Serving participant API on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info")
