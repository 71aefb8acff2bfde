"""Utilities for loading shared quizzes from a human-friendly text file.

File format: a settings header, a ``---`` line, then question blocks
separated by blank lines or ``---``.

    TITLE: World capitals
    DURATION: 10              (minutes, optional; omit for untimed)
    MAX_RETRIES: 2            (optional, default 0 = single attempt)
    SHARE_TOKEN: capitals     (optional; generated when omitted)
    SHARING: on|off
    SHOW_ANSWERS: on|off
    PREVENT_TAB_SWITCH: on|off
    TAB_SWITCH_WARNINGS: 3
    PREVENT_COPY_PASTE: on|off
    RANDOMISE: on|off
    ---
    Q: What is the capital of Norway?
    A: Bergen
    B: Oslo
    C: Trondheim
    D: Stavanger
    CORRECT: B

Authoring happens elsewhere; these files only seed the in-memory quiz store.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from quiz_session.constants.session_constants import DEFAULT_TAB_SWITCH_WARNINGS, OPTION_LABELS
from quiz_session.core.models import Question, Quiz


class QuizImportError(Exception):
    """Raised when a quiz definition cannot be parsed."""


@dataclass(slots=True)
class ImportedQuiz:
    """Container for imported quiz settings and questions."""

    source_path: Path | None
    quiz: Quiz
    questions: list[Question]


_TRUE_VALUES = {"on", "yes", "true", "1"}
_FALSE_VALUES = {"off", "no", "false", "0"}
_FLAG_FIELDS = {
    "SHARING": "sharing_enabled",
    "SHOW_ANSWERS": "show_answers",
    "PREVENT_TAB_SWITCH": "prevent_tab_switch",
    "PREVENT_COPY_PASTE": "prevent_copy_paste",
    "RANDOMISE": "randomise_questions",
}


def load_quiz_from_file(file_path: Path) -> ImportedQuiz:
    text = file_path.read_text(encoding="utf-8")
    imported = parse_quiz_text(text)
    imported.source_path = file_path
    return imported


def load_quizzes_from_directory(directory: Path) -> list[ImportedQuiz]:
    if not directory.is_dir():
        return []
    return [load_quiz_from_file(path) for path in sorted(directory.glob("*.txt"))]


def parse_quiz_text(text: str) -> ImportedQuiz:
    header, body = _split_header(text)
    quiz = _parse_header(header)
    questions = [_parse_block(block, order_num) for order_num, block in enumerate(_split_blocks(body))]
    if not questions:
        raise QuizImportError("Quiz file did not contain any questions.")
    return ImportedQuiz(source_path=None, quiz=quiz, questions=questions)


def _split_header(text: str) -> tuple[list[str], str]:
    lines = text.splitlines()
    for index, raw_line in enumerate(lines):
        if raw_line.strip() == "---":
            return lines[:index], "\n".join(lines[index + 1 :])
    raise QuizImportError("Quiz file must start with a settings header followed by '---'.")


def _parse_header(lines: list[str]) -> Quiz:
    values: dict[str, str] = {}
    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue
        if ":" not in line:
            raise QuizImportError(f"Header line must look like 'KEY: value': '{line}'.")
        key, value = line.split(":", 1)
        values[key.strip().upper()] = value.strip()

    title = values.pop("TITLE", "")
    if not title:
        raise QuizImportError("TITLE is required.")

    quiz = Quiz(
        id="",
        title=title,
        duration_minutes=_optional_positive_int(values.pop("DURATION", ""), "DURATION"),
        max_retries=_non_negative_int(values.pop("MAX_RETRIES", "0"), "MAX_RETRIES"),
        tab_switch_warnings=_optional_positive_int(
            values.pop("TAB_SWITCH_WARNINGS", ""), "TAB_SWITCH_WARNINGS"
        )
        or DEFAULT_TAB_SWITCH_WARNINGS,
        share_token=values.pop("SHARE_TOKEN", "") or None,
    )
    for key, attribute in _FLAG_FIELDS.items():
        if key in values:
            setattr(quiz, attribute, _flag(values.pop(key), key))
    if values:
        raise QuizImportError(f"Unknown header setting(s): {', '.join(sorted(values))}.")
    return quiz


def _split_blocks(body: str) -> list[str]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in body.splitlines():
        stripped = raw_line.strip()
        if stripped == "---" or not stripped:
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        current_block.append(raw_line)
    if current_block:
        blocks.append("\n".join(current_block).strip())
    return blocks


def _parse_block(block: str, order_num: int) -> Question:
    question_lines: list[str] = []
    options: dict[str, str] = {}
    correct_letter: str | None = None
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        upper = line.upper()
        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("CORRECT:"):
            correct_letter = line.split(":", 1)[1].strip().upper()
            current_section = None
            continue

        if len(line) > 2 and line[0].upper() in OPTION_LABELS and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            question_lines.append(line)
        elif current_section in OPTION_LABELS:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise QuizImportError(f"Encountered text outside of a known section: '{line}'.")

    question_text = "\n".join(question_lines).strip()
    if not question_text:
        raise QuizImportError("Question text missing (Q: ...)")
    if len(options) != len(OPTION_LABELS):
        raise QuizImportError("Each question must define exactly four options (A-D).")

    option_list = [options[letter].strip() for letter in OPTION_LABELS]
    if any(not option for option in option_list):
        raise QuizImportError("Option text cannot be empty.")

    if correct_letter is None:
        raise QuizImportError("CORRECT is required for every question.")
    if correct_letter not in OPTION_LABELS:
        raise QuizImportError("CORRECT must be one of A, B, C, or D.")

    return Question(
        id="",  # assigned by the repository
        question_text=question_text,
        options=option_list,
        correct_option_index=OPTION_LABELS.index(correct_letter),
        order_num=order_num,
    )


def _flag(raw_value: str, key: str) -> bool:
    value = raw_value.lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise QuizImportError(f"{key} must be 'on' or 'off'.")


def _optional_positive_int(raw_value: str, key: str) -> int | None:
    if not raw_value:
        return None
    value = _non_negative_int(raw_value, key)
    if value == 0:
        raise QuizImportError(f"{key} must be a positive integer.")
    return value


def _non_negative_int(raw_value: str, key: str) -> int:
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise QuizImportError(f"{key} must be an integer.") from exc
    if value < 0:
        raise QuizImportError(f"{key} must not be negative.")
    return value
