"""Domain models for the attempt session engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from quiz_session.constants.session_constants import DEFAULT_TAB_SWITCH_WARNINGS


@dataclass(slots=True)
class Quiz:
    """Quiz settings as supplied by the remote collaborator (read-only)."""

    id: str
    title: str
    duration_minutes: int | None = None  # None means untimed
    max_retries: int = 0  # 0 means a single attempt
    sharing_enabled: bool = True
    show_answers: bool = True
    prevent_tab_switch: bool = False
    tab_switch_warnings: int = DEFAULT_TAB_SWITCH_WARNINGS
    prevent_copy_paste: bool = False
    randomise_questions: bool = False
    share_token: str | None = None

    @property
    def duration_seconds(self) -> int | None:
        if self.duration_minutes is None:
            return None
        return self.duration_minutes * 60


@dataclass(slots=True)
class Question:
    """Multiple-choice question with exactly four options."""

    id: str
    question_text: str
    options: list[str]
    correct_option_index: int
    order_num: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "question_text": self.question_text,
            "options": list(self.options),
            "correct_option_index": self.correct_option_index,
            "order_num": self.order_num,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Question":
        return cls(
            id=str(data["id"]),
            question_text=str(data["question_text"]),
            options=[str(option) for option in data["options"]],
            correct_option_index=int(data["correct_option_index"]),
            order_num=int(data.get("order_num", 0)),
        )


@dataclass(slots=True)
class AttemptRecord:
    """Persisted outcome of one completed submission. Written once."""

    quiz_id: str
    participant_name: str
    answers: dict[str, int]
    score: int
    total_questions: int
    time_taken_seconds: int
    tab_switch_count: int
    completed_at: datetime


class SessionPhase(str, Enum):
    GATED = "gated"
    CHECKING_ELIGIBILITY = "checking_eligibility"
    BLOCKED = "blocked"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


@dataclass(slots=True)
class AttemptSession:
    """Ephemeral in-memory state of the attempt currently in progress."""

    participant_name: str = ""
    started_at: float | None = None
    time_remaining_seconds: int | None = None
    tab_switch_count: int = 0
    answers: dict[str, int] = field(default_factory=dict)
    questions: list[Question] = field(default_factory=list)
    submitted: bool = False
    blocked: bool = False


@dataclass(slots=True, frozen=True)
class Eligibility:
    """Result of one Retry Gate evaluation."""

    attempt_count: int
    effective_limit: int
    blocked: bool
    retries_left: int
    verified: bool = True


@dataclass(slots=True)
class SubmissionOutcome:
    """What the participant sees after a submission completes."""

    record: AttemptRecord
    persisted: bool
    auto: bool
    eligibility: Eligibility | None = None

    @property
    def score(self) -> int:
        return self.record.score

    @property
    def total_questions(self) -> int:
        return self.record.total_questions
