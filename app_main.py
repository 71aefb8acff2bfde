"""Application entry point for the QuizShare attempt server."""

from __future__ import annotations

import socket

from quiz_session.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_session.constants.session_constants import QUIZ_DIRECTORY, SESSION_DATA_DIRECTORY
from quiz_session.core.quiz_importer import load_quizzes_from_directory
from quiz_session.core.services.quiz_repository import InMemoryQuizRepository
from quiz_session.core.session_registry import SessionRegistry, json_store_factory
from quiz_session.server.api_server import start_api_server
from quiz_session.utils.logging_config import configure_logging


def _determine_base_url(port: int) -> str:
    """Best-effort determination of the local IP for participant-facing URLs."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}"


def main() -> None:
    """Initialize logging, load shared quizzes, and serve the participant API."""
    logger = configure_logging()
    logger.info("Starting QuizShare attempt server…")

    repository = InMemoryQuizRepository()
    for imported in load_quizzes_from_directory(QUIZ_DIRECTORY):
        repository.add_quiz(imported.quiz, imported.questions)
    if not repository.list_quizzes():
        logger.warning("No quizzes found in %s.", QUIZ_DIRECTORY.resolve())

    base_url = _determine_base_url(DEFAULT_PORT)
    for quiz in repository.list_quizzes():
        logger.info("Quiz %r shared at %s/quiz/%s", quiz.title, base_url, quiz.share_token)

    registry = SessionRegistry(repository, json_store_factory(SESSION_DATA_DIRECTORY))
    start_api_server(registry=registry, host=DEFAULT_HOST, port=DEFAULT_PORT)


if __name__ == "__main__":
    main()
